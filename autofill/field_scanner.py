"""Page scanning: visible form controls → normalized ``Question`` list."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .dropdown_options import DropdownConfig, extract_options
from .form_models import FieldType, Question
from .option_matching import clean_options, normalize_question

LOGGER = logging.getLogger(__name__)

# Enumeration order is fixed: inputs, textareas, selects, then ARIA comboboxes
# that are not already represented by an enclosed input.
SCAN_SCRIPT = r"""
() => {
  const clean = (text) => (text || '').trim().split('\n')[0].trim().replace(/\s+/g, ' ');
  const esc = (value) => (window.CSS && CSS.escape) ? CSS.escape(value) : String(value).replace(/["\\#.:]/g, '\\$&');
  const quote = (value) => String(value).replace(/\\/g, '\\\\').replace(/"/g, '\\"');
  const humanize = (name) => String(name)
    .replace(/[_\-\[\]]+/g, ' ')
    .replace(/([a-z])([A-Z])/g, '$1 $2')
    .replace(/\s+/g, ' ')
    .trim();

  const isVisible = (el) => {
    const rect = el.getBoundingClientRect();
    const style = getComputedStyle(el);
    return rect.width > 0 && rect.height > 0
      && style.display !== 'none'
      && style.visibility !== 'hidden'
      && style.opacity !== '0';
  };

  const labelElement = (el) => {
    if (el.id) {
      const label = document.querySelector(`label[for="${quote(el.id)}"]`);
      if (label) return label;
    }
    return el.closest('label');
  };

  const textOfIds = (ids) => ids.split(/\s+/)
    .map((id) => document.getElementById(id))
    .filter(Boolean)
    .map((node) => node.textContent || '')
    .join(' ');

  const labelFor = (el) => {
    const aria = el.getAttribute('aria-label');
    if (aria && aria.trim()) return clean(aria);
    if (el.id) {
      const label = document.querySelector(`label[for="${quote(el.id)}"]`);
      if (label && label.textContent.trim()) return clean(label.textContent);
    }
    const wrapping = el.closest('label');
    if (wrapping && wrapping.textContent.trim()) return clean(wrapping.textContent);
    const labelledBy = el.getAttribute('aria-labelledby');
    if (labelledBy) {
      const text = textOfIds(labelledBy);
      if (text.trim()) return clean(text);
    }
    let sibling = el.previousElementSibling;
    while (sibling) {
      const text = (sibling.textContent || '').trim();
      if (sibling.tagName === 'LABEL' && text) return clean(text);
      if ((sibling.tagName === 'DIV' || sibling.tagName === 'SPAN') && text && text.length < 100) {
        return clean(text);
      }
      sibling = sibling.previousElementSibling;
    }
    const container = el.closest('[role="group"], .field, .form-field, .question, .form-group');
    if (container) {
      const text = clean(container.textContent);
      if (text) return text;
    }
    const name = el.getAttribute('name');
    if (name) return humanize(name);
    return '';
  };

  const locatorFor = (el) => {
    if (el.id) return `#${esc(el.id)}`;
    const tag = el.tagName.toLowerCase();
    const name = el.getAttribute('name');
    if (name) return `${tag}[name="${quote(name)}"]`;
    const path = [];
    let current = el;
    while (current && current.nodeType === 1) {
      if (current === document.body) {
        path.unshift('body');
        break;
      }
      if (current.id) {
        path.unshift(`#${esc(current.id)}`);
        break;
      }
      let part = current.tagName.toLowerCase();
      const parent = current.parentElement;
      if (parent) {
        const same = Array.from(parent.children).filter((child) => child.tagName === current.tagName);
        if (same.length > 1) part += `:nth-of-type(${same.indexOf(current) + 1})`;
      }
      path.unshift(part);
      current = parent;
    }
    return path.join(' > ');
  };

  const classify = (el) => {
    const tag = el.tagName.toLowerCase();
    if (el.getAttribute('role') === 'combobox'
      || el.getAttribute('aria-haspopup') === 'listbox'
      || (tag !== 'select' && el.closest('[role="combobox"]'))
      || el.querySelector('[role="combobox"]')) {
      return 'DROPDOWN_CUSTOM';
    }
    if (tag === 'select' || el.querySelector('select')) return 'SELECT_NATIVE';
    if (tag === 'textarea') return 'TEXTAREA';
    if (tag === 'input') {
      switch ((el.type || '').toLowerCase()) {
        case 'email': return 'EMAIL';
        case 'tel': return 'PHONE';
        case 'number': return 'NUMBER';
        case 'date': return 'DATE';
        case 'file': return 'FILE';
        case 'radio': return 'RADIO';
        case 'checkbox': return 'CHECKBOX';
        default: return 'TEXT';
      }
    }
    return 'TEXT';
  };

  const isRequired = (el, text) => {
    if (el.hasAttribute('required') || el.getAttribute('aria-required') === 'true') return true;
    const inner = el.querySelector && el.querySelector('input, select');
    if (inner && (inner.hasAttribute('required') || inner.getAttribute('aria-required') === 'true')) return true;
    return text.includes('*');
  };

  const radioLabel = (radio) => {
    const label = labelElement(radio);
    if (label && label.textContent.trim()) return clean(label.textContent);
    const aria = radio.getAttribute('aria-label');
    if (aria && aria.trim()) return clean(aria);
    return radio.value && radio.value !== 'on' ? radio.value : '';
  };

  const radioVisible = (radio) => {
    if (isVisible(radio)) return true;
    const label = labelElement(radio);
    return !!label && isVisible(label);
  };

  const groupLabel = (radios, name) => {
    const first = radios[0];
    const fieldset = first.closest('fieldset');
    if (fieldset) {
      const legend = fieldset.querySelector('legend');
      if (legend && legend.textContent.trim()) return clean(legend.textContent);
    }
    const group = first.closest('[role="radiogroup"], [role="group"]');
    if (group) {
      const aria = group.getAttribute('aria-label');
      if (aria && aria.trim()) return clean(aria);
      const labelledBy = group.getAttribute('aria-labelledby');
      if (labelledBy && textOfIds(labelledBy).trim()) return clean(textOfIds(labelledBy));
    }
    const optionTexts = new Set(radios.map((radio) => radioLabel(radio).toLowerCase()));
    let container = first.parentElement;
    for (let depth = 0; container && container !== document.body && depth < 5; depth += 1) {
      if (radios.every((radio) => container.contains(radio))) {
        const text = clean(container.innerText || container.textContent);
        if (text && !optionTexts.has(text.toLowerCase())) return text;
      }
      container = container.parentElement;
    }
    return name ? humanize(name) : '';
  };

  const candidates = [];
  const seen = new Set();
  const add = (el) => {
    if (!seen.has(el)) {
      seen.add(el);
      candidates.push(el);
    }
  };
  document.querySelectorAll(
    'input:not([type="hidden"]):not([type="submit"]):not([type="button"]):not([type="reset"]):not([type="image"])'
  ).forEach((el) => {
    if ((el.type || '').toLowerCase() === 'radio' ? radioVisible(el) : isVisible(el)) add(el);
  });
  document.querySelectorAll('textarea').forEach((el) => { if (isVisible(el)) add(el); });
  document.querySelectorAll('select').forEach((el) => { if (isVisible(el)) add(el); });
  document.querySelectorAll('[role="combobox"], [aria-haspopup="listbox"]').forEach((el) => {
    if (seen.has(el) || !isVisible(el)) return;
    const input = el.querySelector('input');
    if (input && seen.has(input)) return;
    add(el);
  });

  const results = [];
  const groups = new Map();
  for (const el of candidates) {
    const fieldType = classify(el);
    if (fieldType === 'RADIO') {
      const name = el.getAttribute('name') || '';
      const key = name || `radio-${results.length}`;
      if (!groups.has(key)) {
        const entry = { group: true, name, radios: [] };
        groups.set(key, entry);
        results.push(entry);
      }
      groups.get(key).radios.push(el);
      continue;
    }
    const text = labelFor(el);
    results.push({
      text,
      fieldType,
      required: isRequired(el, text),
      locator: locatorFor(el),
      options: [],
    });
  }

  return results.map((entry) => {
    if (!entry.group) return entry;
    const text = groupLabel(entry.radios, entry.name);
    return {
      text,
      fieldType: 'RADIO',
      required: entry.radios.some((radio) => isRequired(radio, '')) || text.includes('*'),
      locator: entry.name ? `input[type="radio"][name="${quote(entry.name)}"]` : locatorFor(entry.radios[0]),
      options: entry.radios.map(radioLabel).filter(Boolean),
    };
  });
}
"""


def dedupe_questions(
    questions: Sequence[Question], logger: Optional[logging.Logger] = None
) -> List[Question]:
    logger = logger or LOGGER
    seen = set()
    unique: List[Question] = []
    for question in questions:
        key = normalize_question(question.text)
        if key in seen:
            logger.info("Skipping duplicate question %r", question.text)
            continue
        seen.add(key)
        unique.append(question)
    return unique


def _question_from_probe(raw: Mapping[str, Any]) -> Optional[Question]:
    text = str(raw.get("text") or "").strip()
    locator = str(raw.get("locator") or "").strip()
    if not text or not locator:
        return None
    return Question(
        text=text,
        field_type=FieldType.parse(raw.get("fieldType")),
        locator=locator,
        required=bool(raw.get("required")),
        options=clean_options(raw.get("options") or []),
    )


async def scan(
    page: Page,
    *,
    dropdown_config: Optional[DropdownConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> List[Question]:
    """Enumerate visible controls on ``page`` and describe each as a Question."""
    logger = logger or LOGGER
    probes: List[Dict[str, Any]] = await page.evaluate(SCAN_SCRIPT) or []
    logger.info("Found %s candidate form controls", len(probes))

    questions: List[Question] = []
    for raw in probes:
        question = _question_from_probe(raw)
        if question is None:
            # Unlabelled controls are expected on real pages.
            logger.debug("Dropping control without a label: %s", raw.get("locator"))
            continue
        if question.field_type in (FieldType.SELECT_NATIVE, FieldType.DROPDOWN_CUSTOM):
            try:
                question.options = await extract_options(
                    page,
                    page.locator(question.locator).first,
                    config=dropdown_config,
                    logger=logger,
                )
            except PlaywrightError as exc:
                logger.debug("Option extraction failed for %r: %s", question.text, exc)
                question.options = []
            if not question.options:
                logger.warning("No options extracted for dropdown %r", question.text)
        questions.append(question)

    unique = dedupe_questions(questions, logger)
    logger.info("Scan complete: %s unique questions", len(unique))
    return unique


__all__ = ["SCAN_SCRIPT", "scan", "dedupe_questions"]
