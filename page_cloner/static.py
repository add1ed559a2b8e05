"""Script-free preview variant of a cloned page."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Sequence

logger = logging.getLogger("page_cloner")

SCRIPT_BLOCK_PATTERN = re.compile(r"<script\b[^>]*>[\s\S]*?</script\s*>", re.IGNORECASE)
SCRIPT_SELF_CLOSING_PATTERN = re.compile(r"<script\b[^>]*/>", re.IGNORECASE)
NOSCRIPT_PATTERN = re.compile(r"<noscript\b[^>]*>([\s\S]*?)</noscript\s*>", re.IGNORECASE)
BODY_CLOSE_PATTERN = re.compile(r"</body\s*>", re.IGNORECASE)

SHIM_MARKER = "page-cloner-shim"


@dataclass(frozen=True)
class ShimRule:
    """One interaction heuristic; ``script`` is a JavaScript function body."""

    name: str
    script: str


DRAWER_RULE = ShimRule(
    "cart-drawer",
    """
    const checkbox = document.querySelector('#Drawer__checkbox, [class*="drawer"] input[type="checkbox"]');
    const drawer = document.querySelector('nav.Drawer__container, nav[class*="Drawer"], [class*="cart-drawer"]');
    if (!checkbox || !drawer) return;
    const closedTransform = drawer.style.transform || 'translate3d(100%, 0px, 0px)';
    const overlay = document.querySelector('.Drawer__overlay');
    const toggle = () => {
      checkbox.checked = !checkbox.checked;
      drawer.style.transform = checkbox.checked ? 'translate3d(0, 0, 0)' : closedTransform;
      if (overlay) {
        overlay.style.display = checkbox.checked ? 'block' : 'none';
        overlay.style.opacity = checkbox.checked ? '1' : '0';
      }
    };
    document.querySelectorAll('[class*="cart-btn"], [class*="cart-icon"], button[class*="cursor-pointer"]:has(svg)')
      .forEach((btn) => {
        if (btn.getBoundingClientRect().top >= 100) return;
        btn.style.cursor = 'pointer';
        btn.addEventListener('click', (e) => { e.preventDefault(); e.stopPropagation(); toggle(); });
      });
    const closeBtn = drawer.querySelector('button:has(svg)');
    if (closeBtn) {
      closeBtn.style.cursor = 'pointer';
      closeBtn.addEventListener('click', (e) => { e.preventDefault(); e.stopPropagation(); if (checkbox.checked) toggle(); });
    }
    if (overlay) {
      overlay.style.cursor = 'pointer';
      overlay.addEventListener('click', () => { if (checkbox.checked) toggle(); });
    }
    """,
)

BUNDLE_RULE = ShimRule(
    "bundle-selector",
    """
    const buttons = Array.from(document.querySelectorAll('button')).filter((b) => {
      const text = (b.textContent || '').trim();
      return /\\b(get|buy)\\s+\\d/i.test(text) || /\\bsave\\b/i.test(text) && /\\d/.test(text);
    });
    if (!buttons.length) return;
    const select = (chosen) => {
      buttons.forEach((btn) => {
        const on = btn === chosen;
        btn.style.border = on ? '2px solid #10b981' : '';
        btn.style.background = on ? 'rgba(16, 185, 129, 0.1)' : '';
        if (on) btn.setAttribute('data-selected', 'true'); else btn.removeAttribute('data-selected');
      });
    };
    select(buttons[0]);
    buttons.forEach((btn) => {
      btn.style.cursor = 'pointer';
      btn.addEventListener('click', (e) => { e.preventDefault(); select(btn); });
    });
    """,
)

ADD_TO_CART_RULE = ShimRule(
    "add-to-cart",
    """
    const checkbox = document.querySelector('#Drawer__checkbox, [class*="drawer"] input[type="checkbox"]');
    const drawer = document.querySelector('nav.Drawer__container, nav[class*="Drawer"], [class*="cart-drawer"]');
    Array.from(document.querySelectorAll('button'))
      .filter((b) => (b.textContent || '').toLowerCase().includes('add to cart'))
      .forEach((btn) => {
        btn.style.cursor = 'pointer';
        btn.addEventListener('click', (e) => {
          e.preventDefault();
          if (checkbox && drawer && !checkbox.checked) {
            checkbox.checked = true;
            drawer.style.transform = 'translate3d(0, 0, 0)';
            const overlay = document.querySelector('.Drawer__overlay');
            if (overlay) { overlay.style.display = 'block'; overlay.style.opacity = '1'; }
          }
          const label = btn.textContent;
          btn.textContent = 'Added!';
          btn.style.background = '#10b981';
          setTimeout(() => { btn.textContent = label; btn.style.background = ''; }, 1500);
        });
      });
    """,
)

QUANTITY_RULE = ShimRule(
    "quantity-stepper",
    """
    const minus = document.querySelectorAll('button[aria-label="minusButton"], button[aria-label*="decrease" i]');
    const plus = document.querySelectorAll('button[aria-label="plusButton"], button[aria-label*="increase" i]');
    minus.forEach((minusBtn, index) => {
      const plusBtn = plus[index];
      if (!plusBtn) return;
      const display = minusBtn.parentElement && minusBtn.parentElement.querySelector('span, input, div:not(button)');
      const read = () => parseInt(display ? (display.value || display.textContent) : '1', 10) || 1;
      const write = (qty) => {
        if (!display) return;
        if ('value' in display) display.value = qty; else display.textContent = qty;
      };
      [minusBtn, plusBtn].forEach((btn) => {
        btn.removeAttribute('disabled');
        btn.style.cursor = 'pointer';
        btn.style.opacity = '1';
      });
      minusBtn.addEventListener('click', (e) => {
        e.preventDefault(); e.stopPropagation();
        const qty = read();
        if (qty > 1) write(qty - 1);
      });
      plusBtn.addEventListener('click', (e) => {
        e.preventDefault(); e.stopPropagation();
        write(read() + 1);
      });
    });
    """,
)

GALLERY_RULE = ShimRule(
    "image-gallery",
    """
    const main = document.querySelector('[class*="main-image"], [class*="product-image"] img, [class*="gallery"] img:first-of-type');
    const thumbs = document.querySelectorAll('[class*="thumbnail"] img, [class*="gallery"] img');
    if (!main || thumbs.length < 2) return;
    thumbs.forEach((thumb) => {
      thumb.style.cursor = 'pointer';
      thumb.addEventListener('click', () => {
        main.src = thumb.src;
        thumbs.forEach((t) => { t.style.opacity = t === thumb ? '1' : '0.5'; });
      });
    });
    """,
)

COMBOBOX_RULE = ShimRule(
    "combobox",
    """
    document.querySelectorAll('[role="combobox"]').forEach((box) => {
      box.style.cursor = 'pointer';
      box.addEventListener('click', () => {
        const open = box.getAttribute('data-state') !== 'open';
        box.setAttribute('data-state', open ? 'open' : 'closed');
        box.setAttribute('aria-expanded', String(open));
        const chevron = box.querySelector('svg');
        if (chevron) chevron.style.transform = open ? 'rotate(180deg)' : '';
      });
    });
    """,
)

CHECKOUT_RULE = ShimRule(
    "checkout-cta",
    """
    document.querySelectorAll('button[class*="checkout"], a[class*="checkout"], button[class*="proceed"]')
      .forEach((btn) => {
        btn.style.cursor = 'pointer';
        btn.addEventListener('click', (e) => {
          if (btn.tagName === 'A') return;
          e.preventDefault();
          alert('This is a cloned preview page.');
        });
      });
    """,
)

HAMBURGER_RULE = ShimRule(
    "hamburger-menu",
    """
    let trigger = document.querySelector('[class*="hamburger"], [class*="menu-btn"], [aria-label*="menu" i], .burger');
    if (!trigger) {
      trigger = Array.from(document.querySelectorAll('div[class*="cursor-pointer"], button')).find((el) => {
        const rect = el.getBoundingClientRect();
        return rect.top < 80 && rect.left < 150 && rect.width < 60 && rect.height < 60
          && el.querySelector('svg') && !el.closest('[class*="Drawer"]');
      });
    }
    const menu = document.querySelector(
      '[class*="mobile-nav"], [class*="slide-menu"], [class*="nav-drawer"], ' +
      'nav[class*="fixed"]:not(.Drawer__container), [class*="sidebar"]:not(.Drawer)'
    );
    if (!trigger || !menu) return;
    trigger.style.cursor = 'pointer';
    trigger.addEventListener('click', (e) => {
      e.preventDefault(); e.stopPropagation();
      const hidden = menu.style.display === 'none' || menu.classList.contains('hidden')
        || getComputedStyle(menu).display === 'none';
      if (hidden) {
        menu.classList.remove('hidden');
        menu.style.display = 'block';
        if ((menu.style.transform || '').includes('translate')) menu.style.transform = 'translate3d(0, 0, 0)';
      } else {
        menu.style.display = 'none';
      }
    });
    """,
)

NAV_DROPDOWN_RULE = ShimRule(
    "nav-dropdown",
    """
    document.querySelectorAll('nav li, ul.menu li').forEach((li) => {
      const submenu = li.querySelector('ul, [class*="submenu"], [class*="dropdown"]');
      if (!submenu) return;
      li.addEventListener('mouseenter', () => {
        submenu.classList.remove('hidden', 'invisible', 'opacity-0');
        submenu.style.display = 'block';
      });
      li.addEventListener('mouseleave', () => {
        submenu.classList.add('hidden');
        submenu.style.display = '';
      });
    });
    """,
)

POINTER_RULE = ShimRule(
    "pointer-cursors",
    """
    document.querySelectorAll('button, [role="button"], [class*="cursor-pointer"]')
      .forEach((el) => { el.style.cursor = 'pointer'; });
    """,
)

DEFAULT_RULES = (
    DRAWER_RULE,
    BUNDLE_RULE,
    ADD_TO_CART_RULE,
    QUANTITY_RULE,
    GALLERY_RULE,
    COMBOBOX_RULE,
    CHECKOUT_RULE,
    HAMBURGER_RULE,
    NAV_DROPDOWN_RULE,
    POINTER_RULE,
)


def build_shim_script(rules: Sequence[ShimRule] = DEFAULT_RULES) -> str:
    """Assemble the rules into one ``<script>``; each rule runs in its own try block."""
    blocks = []
    for rule in rules:
        blocks.append(
            "  try {\n"
            f"    (function () {{{rule.script}}})();\n"
            "  } catch (err) {\n"
            f"    console.debug('[{SHIM_MARKER}] rule skipped:', {json.dumps(rule.name)}, err);\n"
            "  }"
        )
    body = "\n".join(blocks)
    return (
        f'<script data-cloner-ui="{SHIM_MARKER}">\n'
        "(function () {\n"
        f"{body}\n"
        "})();\n"
        "</script>"
    )


def strip_scripts(html: str) -> str:
    """Drop every script element and show ``<noscript>`` content instead."""
    html = SCRIPT_SELF_CLOSING_PATTERN.sub("", html)
    html = SCRIPT_BLOCK_PATTERN.sub("", html)
    return NOSCRIPT_PATTERN.sub(lambda match: match.group(1), html)


def inject_before_body_close(html: str, snippet: str) -> str:
    matches = list(BODY_CLOSE_PATTERN.finditer(html))
    if not matches:
        return html + snippet
    last = matches[-1]
    return html[: last.start()] + snippet + html[last.start():]


def build_static_html(html: str, rules: Sequence[ShimRule] = DEFAULT_RULES) -> str:
    """Script-stripped copy of ``html`` with the interaction shim injected."""
    static_html = strip_scripts(html)
    if rules:
        static_html = inject_before_body_close(static_html, build_shim_script(rules))
    logger.debug("Built static variant with %d shim rules", len(rules))
    return static_html
