from __future__ import annotations

from page_cloner.static import (
    DEFAULT_RULES,
    SHIM_MARKER,
    ShimRule,
    build_shim_script,
    build_static_html,
    inject_before_body_close,
    strip_scripts,
)

PAGE = """<!DOCTYPE html>
<html><head>
<script src="assets/js/app.js"></script>
<SCRIPT type="module">
  import x from "./x.js";
  console.log("</div>");
</SCRIPT>
<script src="assets/js/other.js"/>
</head>
<body>
<noscript><img src="assets/images/fallback.png"></noscript>
<p>Hello</p>
<script>window.analytics = {};</script>
</body>
</html>"""


def test_strip_scripts_removes_every_script_and_unwraps_noscript():
    stripped = strip_scripts(PAGE)
    assert "<script" not in stripped.lower()
    assert "noscript" not in stripped
    assert '<img src="assets/images/fallback.png">' in stripped
    assert "<p>Hello</p>" in stripped


def test_static_html_contains_exactly_one_shim_before_body_close():
    static_html = build_static_html(PAGE)

    marker = f'data-cloner-ui="{SHIM_MARKER}"'
    assert static_html.count("<script") == 1
    assert static_html.count(marker) == 1
    assert static_html.index(marker) < static_html.index("</body>")
    assert "window.analytics" not in static_html


def test_static_html_is_stable_when_rebuilt():
    once = build_static_html(PAGE)
    assert build_static_html(once) == once


def test_shim_rules_are_isolated():
    script = build_shim_script(DEFAULT_RULES)
    assert script.count("try {") == len(DEFAULT_RULES)
    for rule in DEFAULT_RULES:
        assert f'"{rule.name}"' in script


def test_inject_uses_last_body_close_or_appends():
    html = "<body><pre>&lt;/body&gt; </body></pre></body>"
    assert inject_before_body_close(html, "X") == "<body><pre>&lt;/body&gt; </body></pre>X</body>"
    assert inject_before_body_close("<p>fragment</p>", "X") == "<p>fragment</p>X"


def test_custom_rule_set():
    rule = ShimRule("noop", "return;")
    static_html = build_static_html("<body></body>", rules=(rule,))
    assert '"noop"' in static_html
    assert build_static_html("<body></body>", rules=()) == "<body></body>"
