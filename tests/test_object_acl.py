from __future__ import annotations

import json

import pytest

from quotedesk.app.core.errors import MalformedPolicy, NoPolicy
from quotedesk.app.services.object_acl import (
    KEY_OWNER,
    KEY_RULES,
    KEY_VISIBILITY,
    AccessRule,
    GroupType,
    ObjectPolicy,
    Permission,
    Visibility,
    decode_policy,
    encode_policy,
)


def _policy() -> ObjectPolicy:
    return ObjectPolicy.build(
        "u1",
        Visibility.PRIVATE,
        [
            AccessRule(GroupType.USER, "u2", Permission.WRITE),
            AccessRule(GroupType.EMAIL_DOMAIN, "acme.com", Permission.READ),
            AccessRule(GroupType.SUBSCRIBERS, "quote-42", Permission.READ),
        ],
    )


@pytest.mark.parametrize(
    "policy",
    [
        ObjectPolicy.build("u1", "private"),
        ObjectPolicy.build("u1", "public"),
        _policy(),
        ObjectPolicy.build("ü-ser", Visibility.PUBLIC, [AccessRule("user", "名前", Permission.READ)]),
    ],
)
def test_encode_decode_is_lossless(policy: ObjectPolicy) -> None:
    assert decode_policy(encode_policy(policy)) == policy


def test_encoded_record_is_flat_strings() -> None:
    record = encode_policy(_policy())
    assert all(isinstance(k, str) and isinstance(v, str) for k, v in record.items())
    assert record[KEY_OWNER] == "u1"
    assert record[KEY_VISIBILITY] == "private"
    rules = json.loads(record[KEY_RULES])
    assert rules[0] == {"groupType": "user", "groupId": "u2", "permission": "write"}


def test_rule_order_survives_round_trip() -> None:
    policy = _policy()
    decoded = decode_policy(encode_policy(policy))
    assert [r.group_id for r in decoded.rules] == ["u2", "acme.com", "quote-42"]


def test_empty_metadata_is_no_policy() -> None:
    with pytest.raises(NoPolicy):
        decode_policy({})
    with pytest.raises(NoPolicy):
        decode_policy(None)
    with pytest.raises(NoPolicy):
        decode_policy({"content-sha": "abc"})


@pytest.mark.parametrize(
    "metadata",
    [
        {KEY_VISIBILITY: "private"},
        {KEY_OWNER: "", KEY_VISIBILITY: "private"},
        {KEY_OWNER: "u1"},
        {KEY_OWNER: "u1", KEY_VISIBILITY: "secret"},
        {KEY_OWNER: "u1", KEY_VISIBILITY: "private", KEY_RULES: "not json"},
        {KEY_OWNER: "u1", KEY_VISIBILITY: "private", KEY_RULES: '{"groupType": "user"}'},
        {KEY_OWNER: "u1", KEY_VISIBILITY: "private", KEY_RULES: '["user"]'},
        {KEY_OWNER: "u1", KEY_VISIBILITY: "private", KEY_RULES: '[{"groupId": "u2", "permission": "read"}]'},
        {KEY_OWNER: "u1", KEY_VISIBILITY: "private", KEY_RULES: '[{"groupType": "user", "groupId": "u2", "permission": "admin"}]'},
    ],
)
def test_malformed_metadata(metadata) -> None:
    with pytest.raises(MalformedPolicy):
        decode_policy(metadata)


def test_unknown_fields_are_ignored() -> None:
    record = encode_policy(_policy())
    record["acl-future-field"] = "whatever"
    record["x-amz-meta-other"] = "1"
    assert decode_policy(record) == _policy()


def test_keys_are_case_insensitive() -> None:
    record = {k.upper(): v for k, v in encode_policy(_policy()).items()}
    assert decode_policy(record) == _policy()


def test_missing_rules_field_means_no_rules() -> None:
    policy = decode_policy({KEY_OWNER: "u1", KEY_VISIBILITY: "PUBLIC"})
    assert policy.rules == ()
    assert policy.visibility is Visibility.PUBLIC


def test_unknown_group_type_is_kept_verbatim() -> None:
    record = {
        KEY_OWNER: "u1",
        KEY_VISIBILITY: "private",
        KEY_RULES: '[{"groupType": "org_team", "groupId": "t1", "permission": "read"}]',
    }
    policy = decode_policy(record)
    assert policy.rules[0].group_type == "org_team"
    assert decode_policy(encode_policy(policy)) == policy
