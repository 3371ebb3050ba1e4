"""Tests for view session presentation state."""
import asyncio

from schemas.identity import Identity
from services.change_feed import LocalChangeFeed
from services.session_provider import DevSessionProvider
from services.sync_controller import SyncController
from services.view_session import Screen, ViewSession, ViewSessionRegistry
from tests.conftest import ALICE
from tests.fakes import FakeSessionProvider, InMemoryRecordStore


async def make_view(store: InMemoryRecordStore, identity: Identity | None = ALICE) -> ViewSession:
    provider = FakeSessionProvider(identity)
    view = ViewSession("session-1", provider, SyncController(provider, store))
    await view.start()
    return view


async def test__screen__follows_controller_state(store: InMemoryRecordStore) -> None:
    """Loading before start, sign-in when anonymous, workspace once signed in."""
    provider = FakeSessionProvider()
    view = ViewSession("s", provider, SyncController(provider, store))
    assert view.screen is Screen.LOADING

    await view.start()
    assert view.screen is Screen.SIGN_IN

    await provider.sign_in_as(ALICE)
    assert view.screen is Screen.WORKSPACE


async def test__link_count_label__singular_and_plural(store: InMemoryRecordStore) -> None:
    """'1 saved link' versus 'N saved links'."""
    view = await make_view(store)
    assert view.link_count_label == "0 saved links"

    await view.submit_add("https://example.com", "Example")
    assert view.link_count_label == "1 saved link"


async def test__submit_add__success_clears_and_closes_form(
    store: InMemoryRecordStore,
) -> None:
    """A saved bookmark resets the form."""
    view = await make_view(store)
    view.open_form()

    saved = await view.submit_add("  https://example.com ", "Example")

    assert saved is True
    assert view.form_open is False
    assert view.form_url == ""
    assert view.form_title == ""
    assert view.submitting is False
    assert view.bookmarks[0].url == "https://example.com"


async def test__submit_add__failure_preserves_input(store: InMemoryRecordStore) -> None:
    """On a write error the form stays open with the input and a notice."""
    view = await make_view(store)
    view.open_form()
    store.fail_writes = True

    saved = await view.submit_add("https://example.com", "Example")

    assert saved is False
    assert view.form_open is True
    assert view.form_url == "https://example.com"
    assert view.form_title == "Example"
    assert view.submitting is False
    assert view.notice == "Could not save bookmark"
    assert view.bookmarks == ()


async def test__submit_add__blank_fields_are_rejected(store: InMemoryRecordStore) -> None:
    """Blank input never reaches the store."""
    view = await make_view(store)

    saved = await view.submit_add("https://example.com", "   ")

    assert saved is False
    assert store.insert_calls == 0
    assert view.notice == "Both a URL and a title are required."
    assert view.form_url == "https://example.com"


async def test__submit_add__rejected_while_in_flight(store: InMemoryRecordStore) -> None:
    """A second submit during an add is ignored, as the control is disabled."""
    view = await make_view(store)
    gate = asyncio.Event()
    store.insert_gates["Slow"] = gate

    first = asyncio.create_task(view.submit_add("https://slow.example", "Slow"))
    await asyncio.sleep(0)
    assert view.submitting is True

    second = await view.submit_add("https://other.example", "Other")
    gate.set()

    assert second is False
    assert await first is True
    assert store.insert_calls == 1


async def test__request_remove__marks_row_until_settled(store: InMemoryRecordStore) -> None:
    """The row is flagged deleting while the request is in flight."""
    view = await make_view(store)
    await view.submit_add("https://example.com", "Example")
    bookmark_id = view.bookmarks[0].id
    store.delete_gate = asyncio.Event()

    task = asyncio.create_task(view.request_remove(bookmark_id))
    await asyncio.sleep(0)
    assert view.is_deleting(bookmark_id)

    store.delete_gate.set()
    assert await task is True
    assert not view.is_deleting(bookmark_id)
    assert view.bookmarks == ()


async def test__request_remove__failure_unmarks_row(store: InMemoryRecordStore) -> None:
    """A failed delete clears the flag, keeps the row and shows a notice."""
    view = await make_view(store)
    await view.submit_add("https://example.com", "Example")
    bookmark_id = view.bookmarks[0].id
    store.fail_writes = True

    removed = await view.request_remove(bookmark_id)

    assert removed is False
    assert not view.is_deleting(bookmark_id)
    assert [b.id for b in view.bookmarks] == [bookmark_id]
    assert view.notice == "Could not delete bookmark"


async def test__refresh__read_failure_sets_notice(store: InMemoryRecordStore) -> None:
    """Manual refresh reports a failed read instead of raising."""
    view = await make_view(store)
    store.fail_reads = True

    await view.refresh()

    assert view.notice == "Could not load bookmarks"
    view.dismiss_notice()
    assert view.notice is None


async def test__sign_in__failure_sets_blocking_notice(store: InMemoryRecordStore) -> None:
    """Auth errors are shown, and signing in again is the retry."""
    view = await make_view(store, identity=None)
    view.session_provider.fail_sign_in = True

    url = await view.begin_sign_in("http://test/auth/callback")

    assert url is None
    assert view.notice == "Sign in error: provider unavailable"
    assert view.screen is Screen.SIGN_IN


async def test__sign_out__resets_view(store: InMemoryRecordStore) -> None:
    """Sign-out closes the form and shows the sign-in screen with no rows."""
    view = await make_view(store)
    await view.submit_add("https://example.com", "Example")
    view.open_form()

    await view.sign_out()

    assert view.screen is Screen.SIGN_IN
    assert view.form_open is False
    assert view.bookmarks == ()


async def test__registry__reuses_and_closes_sessions(
    store: InMemoryRecordStore, change_feed: LocalChangeFeed,
) -> None:
    """Known cookies map to the same session; unknown ones get a new started session."""
    identity = Identity(id="dev-user")
    registry = ViewSessionRegistry(lambda: DevSessionProvider(identity), store)

    view = await registry.get_or_create(None)
    assert view.screen is Screen.SIGN_IN
    assert await registry.get_or_create(view.session_id) is view
    assert (await registry.get_or_create("stale-cookie")) is not view
    assert len(registry) == 2

    url = await view.begin_sign_in("http://test/auth/callback")
    state = url.split("state=")[1]
    assert await view.complete_sign_in("dev", state) is True
    assert change_feed.subscriber_count("dev-user") == 1

    await registry.close_all()
    assert len(registry) == 0
    assert change_feed.subscriber_count("dev-user") == 0


async def test__submit_add__rejects_non_web_url(store: InMemoryRecordStore) -> None:
    """javascript: and other non-http(s) URLs never reach the store."""
    view = await make_view(store)

    saved = await view.submit_add("javascript:alert(1)", "Sneaky")

    assert saved is False
    assert store.insert_calls == 0
    assert view.notice == "Only http:// and https:// links can be saved."
    assert view.form_url == "javascript:alert(1)"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestRegistryExpiry:
    """Idle view sessions are closed and the registry size is capped."""

    @staticmethod
    def make_registry(
        store: InMemoryRecordStore, clock: FakeClock, **kwargs: float,
    ) -> ViewSessionRegistry:
        identity = Identity(id="dev-user")
        return ViewSessionRegistry(
            lambda: DevSessionProvider(identity), store, clock=clock, **kwargs,
        )

    async def test__idle_session__is_closed_on_later_request(
        self, store: InMemoryRecordStore, change_feed: LocalChangeFeed,
    ) -> None:
        clock = FakeClock()
        registry = self.make_registry(store, clock, idle_timeout=60)
        view = await registry.get_or_create(None)
        url = await view.begin_sign_in("http://test/auth/callback")
        await view.complete_sign_in("dev", url.split("state=")[1])
        assert change_feed.subscriber_count("dev-user") == 1

        clock.now += 61
        other = await registry.get_or_create(None)

        assert registry.get(view.session_id) is None
        assert len(registry) == 1
        assert registry.get(other.session_id) is other
        assert change_feed.subscriber_count("dev-user") == 0

    async def test__active_session__is_kept(self, store: InMemoryRecordStore) -> None:
        clock = FakeClock()
        registry = self.make_registry(store, clock, idle_timeout=60)
        view = await registry.get_or_create(None)

        clock.now += 50
        assert await registry.get_or_create(view.session_id) is view
        clock.now += 50
        await registry.get_or_create(None)

        assert registry.get(view.session_id) is view
        assert len(registry) == 2

    async def test__cookieless_requests__are_capped(self, store: InMemoryRecordStore) -> None:
        """Past max_sessions, the least recently seen session is closed."""
        clock = FakeClock()
        registry = self.make_registry(store, clock, max_sessions=3)
        views = []
        for _ in range(5):
            clock.now += 1
            views.append(await registry.get_or_create(None))

        assert len(registry) == 3
        assert [registry.get(v.session_id) is not None for v in views] == [
            False, False, True, True, True,
        ]

    async def test__sweep_idle__returns_closed_count(self, store: InMemoryRecordStore) -> None:
        clock = FakeClock()
        registry = self.make_registry(store, clock, idle_timeout=60)
        await registry.get_or_create(None)
        await registry.get_or_create(None)

        clock.now += 30
        assert await registry.sweep_idle() == 0
        clock.now += 31
        assert await registry.sweep_idle() == 2
        assert len(registry) == 0
