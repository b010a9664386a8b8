"""
Tests for performance/access.py — token lookup and unit confinement.
"""
import pytest

from performance.access import (
    check_entity_access,
    check_units,
    require_role,
    scope_filters,
    user_for_token,
)
from performance.errors import AccessDeniedError, AuthenticationError


class TestTokens:
    def test_known_token(self, conn):
        user = user_for_token(conn, "d1-token")
        assert user.id == 4
        assert user.district_id == 1
        assert user.number_ps == 7
        assert user.display_name == "Dev Ashford"

    @pytest.mark.parametrize("token", [None, "", "nope"])
    def test_bad_tokens(self, conn, token):
        with pytest.raises(AuthenticationError):
            user_for_token(conn, token)

    def test_inactive_user(self, conn):
        conn.execute("UPDATE users SET active = 0 WHERE id = 4")
        conn.commit()
        with pytest.raises(AuthenticationError):
            user_for_token(conn, "d1-token")

    def test_require_role(self, users):
        require_role(users["admin"], "ADMIN")
        with pytest.raises(AccessDeniedError):
            require_role(users["state"], "ADMIN")


class TestCheckUnits:
    def test_admin_sees_everything(self, conn, users):
        check_units(conn, users["admin"], state_ids=[1, 2], district_ids=[4])

    def test_state_admin(self, conn, users):
        check_units(conn, users["state"], state_ids=[1], range_ids=[1, 2],
                    district_ids=[1, 3], user_ids=[4, 5])
        with pytest.raises(AccessDeniedError):
            check_units(conn, users["state"], range_ids=[3])
        with pytest.raises(AccessDeniedError):
            check_units(conn, users["state"], district_ids=[4])
        with pytest.raises(AccessDeniedError):
            check_units(conn, users["state"], user_ids=[6])

    def test_range_admin(self, conn, users):
        check_units(conn, users["range"], range_ids=[1], district_ids=[1, 2])
        with pytest.raises(AccessDeniedError):
            check_units(conn, users["range"], district_ids=[3])
        with pytest.raises(AccessDeniedError):
            check_units(conn, users["range"], range_ids=[2])

    def test_district_user(self, conn, users):
        check_units(conn, users["d1"], district_ids=[1], user_ids=[4])
        with pytest.raises(AccessDeniedError):
            check_units(conn, users["d1"], range_ids=[1])
        with pytest.raises(AccessDeniedError):
            check_units(conn, users["d1"], user_ids=[5])

    def test_unassigned_limited_user(self, conn, users):
        conn.execute("UPDATE users SET district_id = NULL WHERE id = 5")
        conn.commit()
        user = user_for_token(conn, "d2-token")
        with pytest.raises(AccessDeniedError):
            check_units(conn, user, district_ids=[2])


class TestScopeFilters:
    def test_unscoped_request_is_narrowed(self, conn, users):
        assert scope_filters(conn, users["range"])["range_ids"] == (1,)
        assert scope_filters(conn, users["d4"])["district_ids"] == (4,)

    def test_scoped_request_is_kept(self, conn, users):
        scope = scope_filters(conn, users["state"], district_ids=[2])
        assert scope["district_ids"] == (2,)
        assert scope["state_ids"] == ()

    def test_admin_is_not_narrowed(self, conn, users):
        assert not any(scope_filters(conn, users["admin"]).values())


class TestEntityAccess:
    def test_own_user(self, conn, users):
        check_entity_access(conn, users["d1"], "user", 4)

    def test_colleague_in_same_district_only(self, conn, users):
        with pytest.raises(AccessDeniedError):
            check_entity_access(conn, users["d1"], "user", 5)
        check_entity_access(conn, users["range"], "user", 5)

    def test_unknown_kind(self, conn, users):
        with pytest.raises(ValueError):
            check_entity_access(conn, users["admin"], "planet", 1)
