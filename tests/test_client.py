import pytest

from conftest import ADMIN_DN, ALICE_DN, ALICE_PW, BASE_DN, BOB_DN
from ldap_bridge.ldap import BindError, BindKind, ConnectionSettings, DirectoryClient


def test_system_bind_with_credentials(client, fake_conn):
    assert client.bind() is True
    assert client.state.kind is BindKind.BOUND
    assert client.state.system
    assert fake_conn.calls == [("bind", ADMIN_DN)]
    # the system binding serves any DN
    assert client.is_bound_for(ALICE_DN)


def test_system_bind_without_password_is_anonymous(fake_conn):
    cfg = ConnectionSettings(host="h", base_dn=BASE_DN, bind_rdn="cn=reader")
    c = DirectoryClient(cfg, connection=fake_conn)
    assert c.bind() is True
    assert c.state.kind is BindKind.ANONYMOUS
    assert fake_conn.calls == [("anonymous_bind", "cn=reader," + BASE_DN)]


def test_bind_as_user(client):
    assert client.bind_as(ALICE_DN, ALICE_PW) is True
    assert client.state.kind is BindKind.BOUND
    assert not client.state.system
    assert client.is_bound_for(ALICE_DN.upper())
    assert not client.is_bound_for(BOB_DN)


def test_failed_bind_as_keeps_state(client):
    client.bind_as(ALICE_DN, ALICE_PW)
    assert client.bind_as(BOB_DN, "wrong") is False
    assert client.state.dn == ALICE_DN


def test_bind_as_refuses_empty_password(client, fake_conn):
    assert client.bind_as(ALICE_DN, "") is False
    assert fake_conn.calls == []
    assert not client.is_bound()


def test_anonymous_bind_is_not_bound_for_dn(client):
    assert client.bind_anon(ALICE_DN) is True
    assert client.is_bound()
    assert not client.is_bound_for(ALICE_DN)


def test_unbind(client):
    client.bind()
    assert client.unbind() is True
    assert client.state.kind is BindKind.UNBOUND
    assert not client.is_bound_for(ALICE_DN)


def test_read_auto_binds_once(client, fake_conn):
    entry = client.read(ALICE_DN)
    assert entry["mail"] == ["alice@example.com"]
    assert entry["dn"] == [ALICE_DN]
    client.read(BOB_DN)
    assert fake_conn.calls_of("bind") == [("bind", ADMIN_DN)]


def test_read_fails_when_auto_bind_fails(fake_conn):
    cfg = ConnectionSettings(host="h", base_dn=BASE_DN, bind_dn=ADMIN_DN, bind_pass="wrong")
    c = DirectoryClient(cfg, connection=fake_conn)
    with pytest.raises(BindError) as exc:
        c.read(ALICE_DN)
    assert exc.value.dn == ALICE_DN
    assert fake_conn.calls_of("search") == []


def test_read_with_attribute_list_omits_dn(client):
    assert client.read(ALICE_DN, ["mail"]) == {"mail": ["alice@example.com"]}


def test_read_dn_only_requests_no_attributes(client, fake_conn):
    assert client.read(ALICE_DN, ["dn"]) == {"dn": [ALICE_DN]}
    assert fake_conn.calls_of("search")[-1][4] == ["1.1"]


def test_read_applies_filters(client):
    assert client.read(ALICE_DN, ["cn"], {"objectClass": "account"}) is None
    assert client.read(ALICE_DN, ["cn"], ["objectClass=inetOrgPerson"]) == {"cn": ["Alice Example"]}


def test_read_missing_entry(client):
    assert client.read("uid=nobody,ou=people," + BASE_DN) is None


def test_search_defaults_to_base_dn(client, fake_conn):
    res = client.search(["uid"], {"mail": "bob@example.com"})
    assert res == [{"uid": ["bob"]}]
    _, base, filterstr, scope, _ = fake_conn.calls_of("search")[-1]
    assert base == BASE_DN
    assert filterstr == "(mail=bob@example.com)"
    assert scope == "sub"


def test_search_no_match_and_failure(client, fake_conn):
    assert client.search(["uid"], {"uid": "nobody"}) == []
    fake_conn.fail_search = True
    assert client.search(["uid"], {"uid": "alice"}) is None


def test_modify_stringifies_and_clears(client, fake_conn):
    assert client.modify(ALICE_DN, {"telephoneNumber": [123], "mail": None}) is True
    assert fake_conn.calls_of("modify") == [("modify", ALICE_DN, {"telephoneNumber": ["123"], "mail": []})]
    assert fake_conn.entries[ALICE_DN]["telephoneNumber"] == ["123"]
    assert "mail" not in fake_conn.entries[ALICE_DN]


def test_modify_password(client, fake_conn):
    assert client.modify_password(ALICE_DN, "new-pw") is True
    assert fake_conn.passwords[ALICE_DN] == "new-pw"


def test_static_helpers():
    assert DirectoryClient.escape("a*") == "a\\2a"
    assert DirectoryClient.parse_dn("uid=a,dc=b") == {"uid": ["a"], "dc": ["b"]}
    assert DirectoryClient.format_filter_string({"uid": "a"}) == "(uid=a)"


def test_system_bind_without_any_identity_is_anonymous_with_no_dn(fake_conn):
    c = DirectoryClient(ConnectionSettings(host="h"), connection=fake_conn)
    assert c.bind() is True
    assert fake_conn.calls == [("anonymous_bind", None)]
    assert c.state.dn is None


def test_failed_bind_as_drops_state_when_previous_binding_is_lost(client, fake_conn):
    client.bind_as(ALICE_DN, ALICE_PW)
    fake_conn.lose_binding_on_reject = True
    assert client.bind_as(BOB_DN, "wrong") is False
    assert client.state.kind is BindKind.UNBOUND
    assert not client.is_bound_for(ALICE_DN)
    # the next operation binds again instead of running anonymously
    client.read(ALICE_DN, ["mail"])
    assert fake_conn.calls_of("bind")[-1] == ("bind", ADMIN_DN)


def test_failed_system_bind_keeps_user_binding(fake_conn):
    cfg = ConnectionSettings(host="h", base_dn=BASE_DN, bind_dn=ADMIN_DN, bind_pass="wrong")
    c = DirectoryClient(cfg, connection=fake_conn)
    c.bind_as(ALICE_DN, ALICE_PW)
    assert c.bind() is False
    assert c.is_bound_for(ALICE_DN)
