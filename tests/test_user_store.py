"""Tests for UserStore."""

from lofireads.models import Address, Session, UserPreferences
from lofireads.storage import USERS_KEY
from lofireads.user_store import (
    EMAIL_TAKEN,
    INVALID_CREDENTIALS,
    NOT_AUTHENTICATED,
    WRONG_PASSWORD,
    UserStore,
    is_admin,
)


class TestRegistration:
    def test_register(self, kv, session):
        store = UserStore(kv)
        result = store.register(session, "a@x.com", "pw-1", "Ada")

        assert result.success is True
        assert result.user.email == "a@x.com"
        assert result.user.role == "user"
        assert result.user.id.startswith("user_")
        assert store.current_user(session) == result.user

    def test_duplicate_email_fails_without_new_entry(self, kv, session):
        store = UserStore(kv)
        store.register(session, "a@x.com", "pw-1", "Ada")

        result = store.register(Session(), "a@x.com", "pw-2", "Impostor")

        assert result.success is False
        assert result.error == EMAIL_TAKEN
        assert result.user is None
        assert len(store.list_users()) == 1

    def test_duplicate_check_ignores_case_and_spaces(self, kv, session):
        store = UserStore(kv)
        store.register(session, "a@x.com", "pw", "Ada")

        assert store.register(session, "  A@X.com ", "pw", "Ada").success is False

    def test_password_not_stored_in_clear(self, kv, session):
        UserStore(kv).register(session, "a@x.com", "correct horse", "Ada")

        raw = (kv.data_dir / f"{USERS_KEY}.json").read_text()
        assert "correct horse" not in raw
        assert kv.get(USERS_KEY, [])[0]["password_hash"]


class TestLogin:
    def test_login(self, kv, session):
        store = UserStore(kv)
        store.register(session, "a@x.com", "pw", "Ada")
        store.logout(session)

        other = Session()
        result = store.login(other, "a@x.com", "pw")

        assert result.success is True
        assert store.current_user(other).email == "a@x.com"
        assert store.current_user(session) is None

    def test_wrong_password(self, kv, session):
        store = UserStore(kv)
        store.register(session, "a@x.com", "pw", "Ada")

        result = store.login(Session(), "a@x.com", "nope")

        assert result.success is False
        assert result.error == INVALID_CREDENTIALS

    def test_unknown_email(self, kv, session):
        result = UserStore(kv).login(session, "ghost@x.com", "pw")
        assert result.error == INVALID_CREDENTIALS

    def test_sessions_are_independent(self, kv):
        store = UserStore(kv)
        tab_a, tab_b = Session(), Session()
        store.register(tab_a, "a@x.com", "pw", "Ada")
        store.register(tab_b, "b@x.com", "pw", "Bob")

        assert store.current_user(tab_a).name == "Ada"
        assert store.current_user(tab_b).name == "Bob"

        store.logout(tab_a)
        assert store.current_user(tab_a) is None
        assert store.current_user(tab_b).name == "Bob"

    def test_logout_without_login(self, kv, session):
        store = UserStore(kv)
        store.logout(session)
        assert store.current_user(session) is None


class TestAccountUpdates:
    def test_update_user(self, kv, session):
        store = UserStore(kv)
        store.register(session, "a@x.com", "pw", "Ada")

        result = store.update_user(session, name="Ada L.")

        assert result.success is True
        assert result.user.name == "Ada L."
        assert store.current_user(session).name == "Ada L."

    def test_update_user_email_taken(self, kv, session):
        store = UserStore(kv)
        store.register(Session(), "b@x.com", "pw", "Bob")
        store.register(session, "a@x.com", "pw", "Ada")

        assert store.update_user(session, email="B@x.com").error == EMAIL_TAKEN

    def test_update_user_requires_login(self, kv, session):
        assert UserStore(kv).update_user(session, name="x").error == NOT_AUTHENTICATED

    def test_update_password(self, kv, session):
        store = UserStore(kv)
        store.register(session, "a@x.com", "old", "Ada")

        assert store.update_password(session, "wrong", "new").error == WRONG_PASSWORD
        assert store.update_password(session, "old", "new").success is True

        assert store.login(Session(), "a@x.com", "old").success is False
        assert store.login(Session(), "a@x.com", "new").success is True

    def test_update_password_requires_login(self, kv, session):
        assert UserStore(kv).update_password(session, "a", "b").error == NOT_AUTHENTICATED


class TestProfiles:
    def test_default_profile(self, kv, session):
        store = UserStore(kv)
        user = store.register(session, "a@x.com", "pw", "Ada").user

        profile = store.get_profile(user.id)

        assert profile.user == user
        assert profile.phone is None
        assert profile.addresses == []
        assert profile.preferences == UserPreferences()

    def test_unknown_user(self, kv):
        store = UserStore(kv)
        assert store.get_profile("nobody") is None
        assert store.update_profile("nobody", phone="1") is None

    def test_update_profile(self, kv, session):
        store = UserStore(kv)
        user = store.register(session, "a@x.com", "pw", "Ada").user

        prefs = UserPreferences(newsletter=True, favorite_genres=["Magical Realism"])
        profile = store.update_profile(user.id, phone="555-0100", preferences=prefs)

        assert profile.phone == "555-0100"
        assert profile.preferences.newsletter is True
        assert profile.preferences.favorite_genres == ["Magical Realism"]

    def test_addresses(self, kv, session, address):
        store = UserStore(kv)
        user = store.register(session, "a@x.com", "pw", "Ada").user

        store.add_address(user.id, address)
        second = Address.from_dict({**address.to_dict(), "id": "addr-2", "city": "Bangor"})
        profile = store.add_address(user.id, second)

        assert [a.id for a in profile.addresses] == ["addr-1", "addr-2"]
        assert [a.is_default for a in profile.addresses] == [False, True]

        profile = store.remove_address(user.id, "addr-1")
        assert [a.city for a in profile.addresses] == ["Bangor"]


def test_is_admin(kv, session):
    user = UserStore(kv).register(session, "a@x.com", "pw", "Ada").user
    assert is_admin(user) is False
    user.role = "admin"
    assert is_admin(user) is True
    assert is_admin(None) is False


def test_malformed_user_record_is_skipped(kv, session):
    store = UserStore(kv)
    store.register(session, "a@x.com", "pw", "Ada")
    with kv.transaction(USERS_KEY, []) as txn:
        txn.value.append({"salt": "00", "password_hash": "00"})
        txn.value.append({"user": {"email": "b@x.com"}})

    assert [u.email for u in store.list_users()] == ["a@x.com"]
    assert store.login(Session(), "b@x.com", "pw").success is False
    assert store.login(Session(), "a@x.com", "pw").success is True
    assert store.update_user(session, name="Ada L.").success is True
