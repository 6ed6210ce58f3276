from simtrack_api.auth_utils import hash_password, new_session_token, verify_password
from simtrack_api.sessions import CurrentUser, SessionStore


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestSessionStore:
    def test_create_and_resolve(self):
        store = SessionStore(ttl_seconds=60)
        user = CurrentUser(id=1, username="admin")
        token = store.create(user)
        assert token.startswith("st_")
        assert store.get(token) == user

    def test_unknown_or_empty_token(self):
        store = SessionStore(ttl_seconds=60)
        assert store.get(None) is None
        assert store.get("") is None
        assert store.get("st_missing") is None

    def test_expiry(self):
        clock = FakeClock()
        store = SessionStore(ttl_seconds=60, clock=clock)
        token = store.create(CurrentUser(id=1, username="admin"))

        clock.now += 59
        assert store.get(token) is not None
        clock.now += 1
        assert store.get(token) is None
        assert len(store) == 0

    def test_expired_sessions_purged_on_create(self):
        clock = FakeClock()
        store = SessionStore(ttl_seconds=10, clock=clock)
        store.create(CurrentUser(id=1, username="a"))
        clock.now += 11
        store.create(CurrentUser(id=2, username="b"))
        assert len(store) == 1

    def test_revoke(self):
        store = SessionStore(ttl_seconds=60)
        token = store.create(CurrentUser(id=1, username="admin"))
        assert store.revoke(token) is True
        assert store.get(token) is None
        assert store.revoke(token) is False
        assert store.revoke(None) is False


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("engineer123")
        assert hashed != "engineer123"
        assert verify_password("engineer123", hashed)
        assert not verify_password("wrong", hashed)

    def test_malformed_hash_is_rejected(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_tokens_are_unique(self):
        assert len({new_session_token() for _ in range(50)}) == 50
