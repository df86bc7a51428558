"""Tests for Host/License/Server virtual key resolution."""

import unittest
from datetime import timedelta

from fixtures.example_data import NOW

from ksc_collector.errors import UnknownSubkeyError
from ksc_collector.object_classes import HOST_DISCOVERY_FIELDS, LICENSE_FIELDS, SERVER_FIELDS, ObjectClass
from ksc_collector.primitives import ksc_datetime_literal
from ksc_collector.virtual_keys import (
    AV_BASES_AGE_BUCKETS,
    STATUS_BITS,
    RtpState,
    host_virtual_keys,
    resolve_virtual_key,
    split_key,
)

NOT_UNASSIGNED = "(KLHST_WKS_GROUPID <> 4)"


def _host(key, host_id=None):
    return resolve_virtual_key(ObjectClass.HOST, split_key(key), host_id, unassigned_group_id=4, now=NOW)


class SplitKeyTests(unittest.TestCase):

    def test_splits_on_dots(self):
        self.assertEqual(split_key("Status.Critical"), ("Status", "Critical"))

    def test_empty_key_has_no_segments(self):
        self.assertEqual(split_key(""), ())
        self.assertEqual(split_key(None), ())
        self.assertEqual(split_key("   "), ())


class HostResolutionTests(unittest.TestCase):

    def test_every_host_key_yields_a_predicate(self):
        subkeys = {"Status": "OK", "RTPState": "Running"}
        for name in host_virtual_keys():
            key = f"{name}.{subkeys[name]}" if name in subkeys else name
            spec = _host(key)
            self.assertTrue(spec.predicate, name)

    def test_unassigned_is_stand_alone(self):
        spec = _host("Unassigned")
        self.assertEqual(spec.predicate, "(KLHST_WKS_GROUPID = 4)")
        self.assertNotIn("<>", spec.predicate)

    def test_other_keys_exclude_unassigned(self):
        for key in ("Status.Any", "RTPState.Failure", "TooOldAVBases", "AVBasesAgeLess1Hr", "KLHST_WKS_DN"):
            spec = _host(key)
            self.assertTrue(spec.predicate.startswith("(&"), key)
            self.assertTrue(spec.predicate.endswith(NOT_UNASSIGNED + ")"), key)

    def test_status_codes(self):
        self.assertEqual(_host("Status.OK").predicate, f"(&(KLHST_WKS_STATUS_ID = 0){NOT_UNASSIGNED})")
        self.assertEqual(_host("Status.Critical").predicate, f"(&(KLHST_WKS_STATUS_ID = 1){NOT_UNASSIGNED})")
        self.assertEqual(_host("Status.Warning").predicate, f"(&(KLHST_WKS_STATUS_ID = 2){NOT_UNASSIGNED})")
        self.assertEqual(_host("Status.Any").predicate, f'(&(KLHST_WKS_STATUS_ID = "*"){NOT_UNASSIGNED})')

    def test_status_without_subvalue_fails(self):
        with self.assertRaises(UnknownSubkeyError):
            _host("Status")

    def test_status_with_unknown_subvalue_fails(self):
        with self.assertRaises(UnknownSubkeyError):
            _host("Status.Broken")

    def test_rtp_state_uses_ordinal_and_overrides_first_field(self):
        spec = _host("RTPState.Failure")
        self.assertEqual(spec.predicate, f"(&(KLHST_WKS_RTP_STATE = 9){NOT_UNASSIGNED})")
        self.assertEqual(spec.field_override, "KLHST_WKS_RTP_STATE")
        self.assertEqual(spec.fields[0], "KLHST_WKS_RTP_STATE")
        self.assertEqual(spec.metric_path, ("KLHST_WKS_RTP_STATE",))

    def test_rtp_state_enum_has_ten_values(self):
        self.assertEqual(len(RtpState), 10)
        self.assertEqual(RtpState.Unknown, 0)
        self.assertEqual(RtpState.Failure, 9)

    def test_rtp_state_invalid_or_missing_fails(self):
        for key in ("RTPState", "RTPState.Bogus", "RTPState."):
            with self.assertRaises(UnknownSubkeyError, msg=key):
                _host(key)

    def test_status_bits(self):
        for name, bit in STATUS_BITS.items():
            spec = _host(name)
            self.assertIn(f"(KLHST_WKS_STATUS_MASK_{bit} <> 0)", spec.predicate)
        self.assertEqual(sorted(STATUS_BITS.values()), [1, 2, 3, 5, 6, 7, 8])

    def test_av_bases_age_buckets(self):
        hour = ksc_datetime_literal(NOW - timedelta(hours=1))
        day = ksc_datetime_literal(NOW - timedelta(days=1))
        week = ksc_datetime_literal(NOW - timedelta(days=7))

        self.assertIn(f"(KLHST_WKS_LAST_UPDATE > {hour})", _host("AVBasesAgeLess1Hr").predicate)

        mid = _host("AVBasesAgeIs24Hrs").predicate
        self.assertIn(f"(KLHST_WKS_LAST_UPDATE > {day})", mid)
        self.assertIn(f"(KLHST_WKS_LAST_UPDATE <= {hour})", mid)

        old = _host("AVBasesAgeMoreThan7Days").predicate
        self.assertIn(f"(KLHST_WKS_LAST_UPDATE <= {week})", old)
        self.assertNotIn(">", old.replace("<>", ""))

        self.assertEqual(len(AV_BASES_AGE_BUCKETS), 5)

    def test_unknown_key_without_id_matches_all(self):
        spec = _host("KLHST_WKS_DN")
        self.assertEqual(spec.predicate, f'(&(KLHST_WKS_DN = "*"){NOT_UNASSIGNED})')
        self.assertEqual(spec.metric_path, ("KLHST_WKS_DN",))

    def test_unknown_key_with_id_matches_id(self):
        spec = _host("KLHST_WKS_DN", host_id="H1")
        self.assertEqual(spec.predicate, f'(&(KLHST_WKS_HOSTNAME = "H1"){NOT_UNASSIGNED})')

    def test_field_list_starts_with_key_and_has_no_duplicates(self):
        spec = _host("KLHST_WKS_DN")
        self.assertEqual(spec.fields, HOST_DISCOVERY_FIELDS[1:2] + HOST_DISCOVERY_FIELDS[:1] + HOST_DISCOVERY_FIELDS[2:])
        self.assertEqual(len(spec.fields), len(set(spec.fields)))

    def test_empty_key_requests_discovery_fields(self):
        self.assertEqual(_host("").fields, HOST_DISCOVERY_FIELDS)


class OtherClassResolutionTests(unittest.TestCase):

    def test_server_has_no_predicate(self):
        spec = resolve_virtual_key(ObjectClass.SERVER, ("KLADMSRV_SERVER_HOSTNAME",))
        self.assertIsNone(spec.predicate)
        self.assertEqual(spec.fields, SERVER_FIELDS)
        self.assertEqual(spec.metric_path, ("KLADMSRV_SERVER_HOSTNAME",))

    def test_license_uses_fixed_fields(self):
        spec = resolve_virtual_key(ObjectClass.LICENSE, ("Status", "Bogus"))
        self.assertIsNone(spec.predicate)
        self.assertEqual(spec.fields, LICENSE_FIELDS)

    def test_resolved_key_is_immutable(self):
        spec = resolve_virtual_key(ObjectClass.LICENSE, ())
        with self.assertRaises(Exception):
            spec.predicate = "x"


if __name__ == "__main__":
    unittest.main()
