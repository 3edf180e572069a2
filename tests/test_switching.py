import asyncio
import json

from conftest import FakePage, FakeSession, FakeSite, fast_settings, token_store

from storescan.browser.driver import PutResponse
from storescan.config import ScanConfig
from storescan.errors import NavigationError
from storescan.session.context import TOKEN_STORAGE_KEY, SessionContext
from storescan.session.storage import MemoryStore
from storescan.session.tokens import TokenManager
from storescan.switching import StoreSwitcher, SwitchState, store_marker_present

STORE_IDS = {"AUS": 10221, "SEA": "10425"}


def _switcher(session, storage=None, store_ids=STORE_IDS):
    config = ScanConfig(settings=fast_settings())
    context = SessionContext(storage=storage if storage is not None else token_store("switch-token"))
    tokens = TokenManager(context, config.settings, config.site, provoke_timeout_s=0.01)
    page = FakePage(session.site)
    return StoreSwitcher(session, page, tokens, store_ids, config, context), page


def _states(outcome):
    return [s.value for s in outcome.transitions]


def test_successful_switch_is_verified_on_the_baseline_page():
    site = FakeSite()
    config = ScanConfig()
    site.add(config.site.baseline_url, '<div data-store-id="10221">Austin Lamar</div>')
    session = FakeSession(site)
    switcher, page = _switcher(session)

    outcome = asyncio.run(switcher.switch_to("AUS"))

    assert outcome.success
    assert outcome.verified
    assert outcome.method == "affinity-request"
    assert _states(outcome) == ["idle", "switching", "verifying", "settled"]
    call = session.put_calls[0]
    assert call["url"] == config.site.switch_url
    assert json.loads(call["body"]) == {"storeId": "10221"}
    assert call["headers"][config.site.token_header] == "switch-token"
    assert page.goto_calls == [config.site.baseline_url]
    assert len(page.observers) == 0


def test_accepted_but_unconfirmed_switch_still_settles():
    session = FakeSession()
    switcher, _ = _switcher(session)

    outcome = asyncio.run(switcher.switch_to("SEA"))

    assert outcome.success
    assert not outcome.verified
    assert outcome.state is SwitchState.SETTLED


def test_rejected_request_falls_back_to_store_page():
    session = FakeSession()
    session.put_statuses = [500]
    switcher, page = _switcher(session)
    site = switcher.config.site

    outcome = asyncio.run(switcher.switch_to("AUS"))

    assert outcome.success
    assert outcome.method == "store-page"
    assert outcome.error is None
    assert _states(outcome) == ["idle", "switching", "failed", "settled"]
    assert page.goto_calls == [site.store_url("10221"), site.baseline_url]


def test_forbidden_response_invalidates_the_token():
    session = FakeSession()
    session.put_statuses = [403]
    storage = token_store("rejected-token")
    switcher, _ = _switcher(session, storage=storage)

    asyncio.run(switcher.switch_to("AUS"))

    assert storage.get(TOKEN_STORAGE_KEY) is None
    assert switcher.context.token is None
    assert switcher.context.passive_capture_armed


def test_both_methods_failing_ends_in_failed():
    session = FakeSession()
    session.put_statuses = [NavigationError("connection reset")]
    switcher, _ = _switcher(session)
    session.site.add(switcher.config.site.store_url("10221"), status=404)

    outcome = asyncio.run(switcher.switch_to("AUS"))

    assert not outcome.success
    assert outcome.state is SwitchState.FAILED
    assert "connection reset" in outcome.error
    assert outcome.error.endswith("store page navigation failed")
    assert _states(outcome) == ["idle", "switching", "failed"]


def test_missing_token_fails_without_any_request():
    session = FakeSession()
    switcher, page = _switcher(session, storage=MemoryStore())

    outcome = asyncio.run(switcher.switch_to("AUS"))

    assert not outcome.success
    assert outcome.error == "no session token available"
    assert session.put_calls == []
    assert page.goto_calls == []


def test_unknown_location_fails_immediately():
    session = FakeSession()
    switcher, _ = _switcher(session)

    outcome = asyncio.run(switcher.switch_to("XYZ"))

    assert not outcome.success
    assert outcome.store_id is None
    assert "XYZ" in outcome.error
    assert session.put_calls == []


def test_concurrent_switch_requests_are_serialized():
    class SlowSession(FakeSession):
        def __init__(self):
            super().__init__()
            self.active = 0
            self.peak = 0

        async def put(self, url, *, headers, body, timeout_ms):
            self.active += 1
            self.peak = max(self.peak, self.active)
            await asyncio.sleep(0.01)
            self.active -= 1
            return PutResponse(status=200)

    session = SlowSession()
    switcher, _ = _switcher(session)

    async def run():
        return await asyncio.gather(switcher.switch_to("AUS"), switcher.switch_to("SEA"))

    first, second = asyncio.run(run())

    assert first.success and second.success
    assert session.peak == 1
    assert [o.location_code for o in switcher.history] == ["AUS", "SEA"]


def test_store_marker_checks_text_and_url():
    assert store_marker_present('<span class="store-selector">AUS - Lamar</span>', "", "AUS", "1")
    assert store_marker_present("", "https://example.test/stores?store=10221", "AUS", "10221")
    assert not store_marker_present("<p>nothing here</p>", "https://example.test/", "AUS", "10221")


def test_store_code_must_match_as_a_whole_word():
    assert not store_marker_present('<span class="store-selector">AUSTIN Domain</span>', "", "AUS", "1")
    assert store_marker_present('<div data-testid="store-selector">Store: AUS</div>', "", "AUS", "1")
    assert not store_marker_present('<div class="storefront-banner">AUS</div>', "", "AUS", "1")
