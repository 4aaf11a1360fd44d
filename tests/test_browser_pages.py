"""
Scanner and fill executor against real markup in headless Chromium.

Skipped when Playwright's Chromium build is not installed.
"""

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from autofill.browser import BrowserConfig, BrowserSession
from autofill.field_scanner import scan
from autofill.io_utils import prepare_run_directories
from autofill.form_filling import CUSTOM_VALUE_SCRIPT, FillConfig, FillExecutor
from autofill.form_models import FieldType, FillStatus
from autofill.resolver import ResolutionEngine

FORM_HTML = """
<form>
  <label for="first">First Name *</label>
  <input id="first" name="first_name" type="text" required>

  <label for="country">Country</label>
  <select id="country">
    <option>Select...</option>
    <option>Canada</option>
    <option>United States</option>
  </select>

  <fieldset>
    <legend>Are you authorized to work in the United States?</legend>
    <label><input type="radio" name="auth" value="yes"> Yes</label>
    <label><input type="radio" name="auth" value="no"> No</label>
  </fieldset>

  <input type="hidden" name="token" value="abc">
</form>
"""


@pytest.fixture
async def page():
    async with async_playwright() as playwright:
        try:
            browser = await playwright.chromium.launch()
        except PlaywrightError as exc:
            pytest.skip(f"Chromium is not available: {exc}")
        page = await browser.new_page()
        await page.set_content(FORM_HTML)
        yield page
        await browser.close()


async def test_scan_real_form(page):
    questions = {q.text: q for q in await scan(page)}
    assert set(questions) == {
        "First Name *",
        "Country",
        "Are you authorized to work in the United States?",
    }
    first = questions["First Name *"]
    assert first.field_type == FieldType.TEXT
    assert first.required
    assert first.locator == "#first"
    assert questions["Country"].options == ["Canada", "United States"]
    radio = questions["Are you authorized to work in the United States?"]
    assert radio.field_type == FieldType.RADIO
    assert radio.options == ["Yes", "No"]


async def test_scan_resolve_fill(page, store, profile):
    questions = await scan(page)
    answers = await ResolutionEngine(store).resolve(questions, profile)
    report = await FillExecutor(page, config=FillConfig(between_fields_ms=0)).fill(answers)

    assert report.failures == 0
    assert all(result.status == FillStatus.FILLED for result in report.results)
    assert await page.input_value("#first") == "Asha"
    assert await page.is_checked('input[name="auth"][value="yes"]')
    assert await page.eval_on_selector("#country", "el => el.options[el.selectedIndex].text") == "United States"


async def test_session_open_and_capture(tmp_path):
    session = BrowserSession(BrowserConfig(navigation_timeout_ms=10000))
    try:
        await session.__aenter__()
    except PlaywrightError as exc:
        await session.close()
        pytest.skip(f"Chromium is not available: {exc}")
    try:
        url = await session.open("data:text/html,<h1>Apply</h1>")
        assert url.startswith("data:text/html")
        shot = await session.capture(prepare_run_directories("r1", "run", data_dir=tmp_path), "landing.png")
        assert shot == tmp_path / "runs" / "r1" / "run" / "landing.png"
        assert shot.stat().st_size > 0
    finally:
        await session.close()


WIDGET_HTML = """
<div class="field">
  <label for="gender">Gender (Man / Woman)</label>
  <div class="select__control">
    <div class="select__value-container">{shown}
      <div class="select__input-container"><input id="gender" role="combobox" value=""></div>
    </div>
  </div>
</div>
"""


@pytest.mark.parametrize(
    "shown, expected",
    [
        ('<div class="select__single-value">Man</div>', ["Man"]),
        ('<div class="select__single-value">Woman</div>', ["Woman"]),
        ('<div class="select__placeholder">Select...</div>', []),
    ],
)
async def test_custom_value_reads_only_the_committed_value(page, shown, expected):
    await page.set_content(WIDGET_HTML.format(shown=shown))
    assert await page.locator("#gender").evaluate(CUSTOM_VALUE_SCRIPT) == expected
