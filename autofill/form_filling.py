"""Apply resolved answers to the live page and verify each one.

Every field goes LOCATE -> APPLY -> VERIFY and ends up filled, skipped or
failed. Fields are processed strictly in order because later sections of a
form often depend on earlier answers.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from .dropdown_options import DropdownConfig, select_custom_option
from .form_models import (
    FailureCode,
    FieldFillResult,
    FieldType,
    FillReport,
    FillStatus,
    ResolvedAnswer,
)
from .logging_utils import preview_answer
from .option_matching import is_truthy, normalize_text
from .page_utils import poll_until, settle
from .telemetry import FailureSink, FieldFailureEvent, site_key

LOGGER = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:([^;,]+)?;base64,(.*)$", re.DOTALL)

RADIO_CLICK_SCRIPT = """
(radios, wanted) => {
  const norm = (text) => (text || '').toLowerCase().trim().replace(/\\s+/g, ' ');
  const labelOf = (radio) => {
    if (radio.id) {
      const byFor = document.querySelector(`label[for="${CSS.escape(radio.id)}"]`);
      if (byFor) return byFor;
    }
    return radio.closest('label');
  };
  const target = norm(wanted);
  for (let index = 0; index < radios.length; index += 1) {
    const radio = radios[index];
    const label = labelOf(radio);
    const text = label ? label.textContent : (radio.getAttribute('aria-label') || radio.value);
    if (norm(text) !== target) continue;
    const el = label || radio;
    for (const type of ['mousedown', 'mouseup', 'click']) {
      el.dispatchEvent(new MouseEvent(type, { bubbles: true, cancelable: true, view: window }));
    }
    return index;
  }
  return -1;
}
"""
RADIO_CHECKED_SCRIPT = "(radios, index) => !!(radios[index] && radios[index].checked)"
CHECKBOX_LABEL_CLICK_SCRIPT = """
(el) => {
  const label = (el.id && document.querySelector(`label[for="${CSS.escape(el.id)}"]`)) || el.closest('label');
  (label || el).click();
}
"""
SELECT_NATIVE_SCRIPT = """
(el, wanted) => {
  const norm = (text) => (text || '').toLowerCase().trim().replace(/\\s+/g, ' ');
  const target = norm(wanted);
  for (let index = 0; index < el.options.length; index += 1) {
    if (norm(el.options[index].text) !== target) continue;
    el.focus();
    el.selectedIndex = index;
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
    el.blur();
    return true;
  }
  return false;
}
"""
SELECTED_TEXT_SCRIPT = """
(el) => (el.selectedIndex >= 0 && el.options[el.selectedIndex]) ? el.options[el.selectedIndex].text : null
"""
CUSTOM_VALUE_SCRIPT = """
(el) => {
  const VALUE = '.select__single-value, .select__multi-value__label, [class*="singleValue"], [class*="single-value"]';
  if (el.tagName === 'SELECT') {
    const option = el.options[el.selectedIndex];
    return option ? [option.text] : [];
  }
  const shown = [];
  let scope = el.closest('.select__control, [class*="-control"]') || el;
  for (let depth = 0; scope && depth < 3; depth += 1) {
    const nodes = scope.querySelectorAll(VALUE);
    if (nodes.length) {
      nodes.forEach((node) => shown.push(node.textContent || ''));
      break;
    }
    scope = scope.parentElement;
  }
  if (el.value) shown.push(el.value);
  return shown;
}
"""
FILE_NAME_SCRIPT = "(el) => (el.files && el.files.length) ? el.files[0].name : null"


@dataclass(slots=True)
class FillConfig:
    between_fields_ms: float = 150
    settle_ms: float = 50
    radio_poll_ms: float = 500
    radio_poll_interval_ms: float = 30
    typing_delay_ms: float = 30
    dropdown: DropdownConfig = field(default_factory=DropdownConfig)


@dataclass(slots=True)
class FillContext:
    run_id: str
    url: str
    job_id: Optional[str] = None

    @property
    def site(self) -> str:
        return site_key(self.url)


class UnfillableAnswer(ValueError):
    """The answer cannot be applied to this kind of control."""


def decode_data_url(data_url: str) -> Optional[Tuple[str, bytes]]:
    match = DATA_URL_PATTERN.match(data_url or "")
    if not match:
        return None
    try:
        payload = base64.b64decode(match.group(2), validate=False)
    except (binascii.Error, ValueError):
        return None
    return match.group(1) or "application/octet-stream", payload


def wants_checked(answer: str) -> bool:
    return is_truthy(answer) or normalize_text(answer).startswith("yes")


class FillExecutor:
    def __init__(
        self,
        page: Page,
        *,
        config: Optional[FillConfig] = None,
        context: Optional[FillContext] = None,
        sinks: Sequence[FailureSink] = (),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.page = page
        self.config = config or FillConfig()
        self.context = context
        self.sinks = list(sinks)
        self._logger = logger or LOGGER

    async def fill(self, answers: Sequence[ResolvedAnswer]) -> FillReport:
        report = FillReport()
        for position, answer in enumerate(answers):
            result = await self.fill_one(answer)
            report.results.append(result)
            if result.status == FillStatus.FAILED:
                self._emit_failure(answer, result)
            if position < len(answers) - 1:
                await settle(self.config.between_fields_ms)
        self._logger.info(
            "Fill complete: %s filled, %s failed, %s skipped",
            report.successes,
            report.failures,
            report.skipped,
        )
        return report

    async def fill_one(self, answer: ResolvedAnswer) -> FieldFillResult:
        question = answer.question
        preview = preview_answer(answer.answer, answer.canonical_key)

        def result(
            status: FillStatus,
            code: Optional[FailureCode] = None,
            detail: Optional[str] = None,
        ) -> FieldFillResult:
            return FieldFillResult(
                question=question.text,
                locator=question.locator,
                field_type=question.field_type,
                status=status,
                preview=preview,
                code=code,
                detail=detail,
            )

        target = await self.locate(question.locator, question.field_type)
        if target is None:
            self._logger.warning("No DOM match for %r (%s)", question.text, question.locator)
            return result(FillStatus.FAILED, FailureCode.NO_DOM_MATCH)

        try:
            committed = await self.apply(target, answer)
        except UnfillableAnswer as exc:
            self._logger.info("Skipping %r: %s", question.text, exc)
            return result(FillStatus.SKIPPED, detail=str(exc))
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("Failed to fill %r: %s", question.text, exc)
            return result(FillStatus.FAILED, FailureCode.FILL_VERIFY_FAILED, str(exc))

        if not committed:
            self._logger.warning("Value did not stick for %r", question.text)
            return result(FillStatus.FAILED, FailureCode.FILL_VERIFY_FAILED)
        self._logger.debug("Filled %r with %s", question.text, preview)
        return result(FillStatus.FILLED)

    async def locate(self, selector: str, field_type: FieldType) -> Optional[Locator]:
        try:
            matches = self.page.locator(selector)
            if not await matches.count():
                return None
        except PlaywrightError as exc:
            self._logger.debug("Selector %s is not usable: %s", selector, exc)
            return None
        if field_type == FieldType.RADIO:
            return matches
        return matches.first

    async def apply(self, target: Locator, answer: ResolvedAnswer) -> bool:
        """Run the type-specific strategy; returns the verification outcome."""
        field_type = answer.question.field_type
        value = answer.answer
        if not value:
            raise UnfillableAnswer("empty answer")
        if field_type == FieldType.RADIO:
            return await self._fill_radio(target, value)
        if field_type == FieldType.CHECKBOX:
            return await self._fill_checkbox(target, value)
        if field_type == FieldType.SELECT_NATIVE:
            return await self._fill_native_select(target, value)
        if field_type == FieldType.DROPDOWN_CUSTOM:
            return await self._fill_custom_dropdown(target, value)
        if field_type == FieldType.FILE:
            return await self._fill_file(target, answer)
        return await self._fill_text(target, value)

    async def _fill_text(self, target: Locator, value: str) -> bool:
        try:
            await target.fill(value)
            await settle(self.config.settle_ms)
            if await target.input_value() == value:
                return True
            self._logger.debug("Direct fill was reset, typing instead")
        except PlaywrightError as exc:
            self._logger.debug("Direct fill failed (%s), typing instead", exc)

        await target.fill("")
        await target.press_sequentially(value, delay=self.config.typing_delay_ms)
        await target.blur()
        await settle(self.config.settle_ms)
        return await target.input_value() == value

    async def _fill_radio(self, radios: Locator, value: str) -> bool:
        index = await radios.evaluate_all(RADIO_CLICK_SCRIPT, value)
        if index is None or index < 0:
            self._logger.debug("No radio labelled %r", value)
            return False

        async def checked() -> bool:
            return bool(await radios.evaluate_all(RADIO_CHECKED_SCRIPT, index))

        return await poll_until(
            checked,
            timeout_ms=self.config.radio_poll_ms,
            interval_ms=self.config.radio_poll_interval_ms,
        )

    async def _fill_checkbox(self, target: Locator, value: str) -> bool:
        desired = wants_checked(value)
        if await target.is_checked() != desired:
            try:
                await target.click()
            except PlaywrightError:
                await target.evaluate(CHECKBOX_LABEL_CLICK_SCRIPT)
            await settle(self.config.settle_ms)
        return await target.is_checked() == desired

    async def _fill_native_select(self, target: Locator, value: str) -> bool:
        if not await target.evaluate(SELECT_NATIVE_SCRIPT, value):
            return False
        selected = await target.evaluate(SELECTED_TEXT_SCRIPT)
        return normalize_text(selected or "") == normalize_text(value)

    async def _fill_custom_dropdown(self, target: Locator, value: str) -> bool:
        chosen = await select_custom_option(
            self.page,
            target,
            value,
            config=self.config.dropdown,
            logger=self._logger,
        )
        if not chosen:
            return False
        await settle(self.config.settle_ms)
        shown = await target.evaluate(CUSTOM_VALUE_SCRIPT) or []
        wanted = normalize_text(value)
        if any(normalize_text(text) == wanted for text in shown):
            return True
        self._logger.debug("Dropdown shows %r, wanted %r", shown, value)
        return False

    async def _fill_file(self, target: Locator, answer: ResolvedAnswer) -> bool:
        decoded = decode_data_url(answer.answer)
        if decoded is None:
            raise UnfillableAnswer("answer is not a file data URL")
        mime_type, payload = decoded
        file_name = answer.file_name or "resume.pdf"
        await target.set_input_files(
            {"name": file_name, "mimeType": mime_type, "buffer": payload}
        )
        return await target.evaluate(FILE_NAME_SCRIPT) == file_name

    def _emit_failure(self, answer: ResolvedAnswer, result: FieldFillResult) -> None:
        if not self.context or not self.sinks or result.code is None:
            return
        event = FieldFailureEvent(
            run_id=self.context.run_id,
            url=self.context.url,
            job_id=self.context.job_id,
            code=result.code.value,
            field=answer.to_dict(preview=result.preview),
            site=self.context.site,
        )
        for sink in self.sinks:
            sink.emit(event)


__all__ = [
    "FillConfig",
    "FillContext",
    "FillExecutor",
    "decode_data_url",
    "wants_checked",
]
