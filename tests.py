#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""Automated tests"""

import base64
import threading
import unittest

import dns.exception
import dns.resolver
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa

import checkmailauth
import checkmailauth.utils
import checkmailauth.spf
import checkmailauth.dmarc
import checkmailauth.dkim
from checkmailauth._constants import DKIM_SELECTORS, SYNTAX_ERROR_MARKER
from checkmailauth.utils import DNSException, DNSExceptionNXDOMAIN


class FakeTXT(object):
    def __init__(self, *strings):
        self.strings = tuple(
            s.encode() if isinstance(s, str) else s for s in strings
        )


class FakePTR(object):
    def __init__(self, hostname):
        self.hostname = hostname

    def to_text(self):
        return self.hostname


class FakeResolver(object):
    """Stands in for dns.resolver.Resolver; unknown names are NXDOMAIN"""

    def __init__(self, records=None, errors=None):
        self.records = records or {}
        self.errors = errors or {}
        self.queries = []
        self._lock = threading.Lock()

    def resolve(self, qname, rdtype="A", lifetime=None):
        name = str(qname).rstrip(".").lower()
        with self._lock:
            self.queries.append((name, rdtype))
        if name in self.errors:
            raise self.errors[name]
        if name in self.records:
            return list(self.records[name])
        raise dns.resolver.NXDOMAIN()


class FakeLookup(object):
    """A TXT lookup that counts its queries"""

    def __init__(self, records=None, errors=None):
        self.records = records or {}
        self.errors = errors or {}
        self.calls = 0
        self._lock = threading.Lock()

    def query(self, name):
        with self._lock:
            self.calls += 1
        name = name.lower()
        if name in self.errors:
            raise self.errors[name]
        if name in self.records:
            return list(self.records[name])
        raise DNSExceptionNXDOMAIN(f"The domain {name} does not exist.")

    def reverse_lookup(self, ip_address):
        raise DNSExceptionNXDOMAIN(f"{ip_address} has no reverse DNS entry.")


def _txt_lookup(records=None, errors=None):
    records = {
        name: [FakeTXT(answer) for answer in answers]
        for name, answers in (records or {}).items()
    }
    resolver = FakeResolver(records=records, errors=errors)
    return checkmailauth.utils.TXTLookup(resolver=resolver), resolver


def _rsa_public_key(key_size=2048):
    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    der = key.public_key().public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(der).decode()


class Test(unittest.TestCase):
    def testNormalizeURL(self):
        """Schemes, paths, and case are removed from URLs"""
        self.assertEqual(
            checkmailauth.utils.normalize_domain("HTTPS://Sub.Example.COM/path"),
            "sub.example.com",
        )
        self.assertEqual(
            checkmailauth.utils.normalize_domain("  ftp://example.org/a/b  "),
            "example.org",
        )

    def testNormalizeStripsOnlyFirstScheme(self):
        self.assertEqual(
            checkmailauth.utils.normalize_domain("https://https://example.com"), ""
        )

    def testNormalizeInvalid(self):
        """Inputs without a dot are not domains"""
        for value in ["", "   ", "localhost", "https://", "..."]:
            self.assertEqual(checkmailauth.utils.normalize_domain(value), "")

    def testNormalizeZeroWidth(self):
        self.assertEqual(
            checkmailauth.utils.normalize_domain("exa\u200bmple.com\ufeff"),
            "example.com",
        )

    def testNormalizeIPAddress(self):
        """IP addresses are replaced with their reverse DNS hostname"""
        resolver = FakeResolver(
            records={"1.2.0.192.in-addr.arpa": [FakePTR("Mail.Example.NET.")]}
        )
        lookup = checkmailauth.utils.TXTLookup(resolver=resolver)
        self.assertEqual(
            checkmailauth.utils.normalize_domain("192.0.2.1", lookup=lookup),
            "mail.example.net",
        )
        self.assertEqual(
            checkmailauth.utils.normalize_domain("192.0.2.2", lookup=lookup), ""
        )

    def testNormalizeIdempotent(self):
        resolver = FakeResolver(
            records={"1.2.0.192.in-addr.arpa": [FakePTR("mail.example.net.")]}
        )
        lookup = checkmailauth.utils.TXTLookup(resolver=resolver)
        inputs = [
            "example.com",
            "  Example.COM.  ",
            "HTTPS://Sub.Example.COM/path",
            "https://https://example.com",
            "http://example.com/https://other.example",
            "ssh://. example.com /",
            ". https://example.com",
            "192.0.2.1",
            "192.0.2.2",
            "2001:db8::1",
            "exa\u200bmple.com",
            "",
            "..",
            "/example.com",
        ]
        for value in inputs:
            once = checkmailauth.utils.normalize_domain(value, lookup=lookup)
            twice = checkmailauth.utils.normalize_domain(once, lookup=lookup)
            self.assertEqual(once, twice, f"Not idempotent for {value!r}")

    def testGetBaseDomain(self):
        subdomain = "foo.example.com"
        result = checkmailauth.utils.get_base_domain(subdomain)
        assert result == "example.com"

        subdomain = "mail.example.co.uk"
        result = checkmailauth.utils.get_base_domain(subdomain)
        assert result == "example.co.uk"

        # Test reserved domains
        subdomain = "_dmarc.nonauth-rua.invalid.example"
        result = checkmailauth.utils.get_base_domain(subdomain)
        assert result == "invalid.example"

    def testParseTags(self):
        """Tags keep their order and duplicates, and empty segments are skipped"""
        tags = checkmailauth.utils.parse_tags(" a = 1 ;; B=x=y; a=2;  ")
        self.assertEqual(
            [(tag.name, tag.value) for tag in tags],
            [("a", "1"), ("b", "x=y"), ("a", "2")],
        )

    def testTXTRecordChunksAreJoined(self):
        lookup, _ = _txt_lookup()
        lookup.resolver.records["example.com"] = [
            FakeTXT("v=spf1 ip4:192.0.2.1 ", "include:_spf.example.net -all")
        ]
        self.assertEqual(
            lookup.query("example.com"),
            ["v=spf1 ip4:192.0.2.1 include:_spf.example.net -all"],
        )

    def testUndecodableTXTRecord(self):
        lookup, _ = _txt_lookup()
        lookup.resolver.records["example.com"] = [FakeTXT(b"\xff\xfe")]
        self.assertEqual(lookup.query("example.com"), ["Undecodable characters"])

    def testTXTLookupErrors(self):
        """NXDOMAIN is a name error; other failures are not"""
        lookup, _ = _txt_lookup(
            errors={
                "timeout.example": dns.exception.Timeout(timeout=2.0),
                "empty.example": dns.resolver.NoAnswer(),
            }
        )
        with self.assertRaises(DNSExceptionNXDOMAIN) as context:
            lookup.query("missing.example")
        self.assertTrue(context.exception.is_name_error)

        with self.assertRaises(DNSException) as context:
            lookup.query("timeout.example")
        self.assertFalse(context.exception.is_name_error)

        self.assertEqual(lookup.query("empty.example"), [])

    def testTXTLookupCache(self):
        """A name is only resolved once per lookup"""
        lookup, resolver = _txt_lookup(records={"example.com": ["v=spf1 -all"]})
        lookup.query("example.com")
        lookup.query("EXAMPLE.com")
        self.assertEqual(len(resolver.queries), 1)

    def testSPFNotFound(self):
        """A domain without an SPF record is not an error"""
        lookup = FakeLookup(records={"example.com": ["google-site-verification=x"]})
        result = checkmailauth.spf.check_spf("example.com", lookup=lookup)
        self.assertFalse(result.found)
        self.assertIsNone(result.error)

        result = checkmailauth.spf.check_spf("missing.example", lookup=lookup)
        self.assertFalse(result.found)
        self.assertIsNone(result.error)

    def testSPFVersionNotFollowedBySpace(self):
        """Records starting with v=spf1 are found, with a warning"""
        lookup = FakeLookup(records={"example.com": ["v=spf10 -all"]})
        result = checkmailauth.spf.check_spf("example.com", lookup=lookup)
        self.assertTrue(result.found)
        self.assertEqual([term.name for term in result.terms], ["all"])
        self.assertIn(
            "The v=spf1 version tag must be followed by a space or the end of "
            "the record.",
            result.warnings,
        )

    def testMultipleSPFRecordsWithUnterminatedVersion(self):
        lookup = FakeLookup(records={"example.com": ["v=spf1 -all", "v=spf1.0 ~all"]})
        result = checkmailauth.spf.check_spf("example.com", lookup=lookup)
        self.assertFalse(result.found)
        self.assertIn("multiple", result.error)
        self.assertEqual(result.raw_record, "v=spf1 -all | v=spf1.0 ~all")

    def testSPFQualifiers(self):
        SPFQualifier = checkmailauth.spf.SPFQualifier
        parsed = checkmailauth.spf.parse_spf_record(
            "v=spf1 +mx ?a -ip4:192.0.2.1 ~include:_spf.example.com all",
            "example.com",
        )
        self.assertEqual(
            [term.qualifier for term in parsed["terms"]],
            [
                SPFQualifier.PASS,
                SPFQualifier.NEUTRAL,
                SPFQualifier.FAIL,
                SPFQualifier.SOFTFAIL,
                SPFQualifier.PASS,
            ],
        )
        self.assertEqual(
            [term.raw for term in parsed["terms"]],
            ["+mx", "?a", "-ip4:192.0.2.1", "~include:_spf.example.com", "all"],
        )

    def testMultipleSPFRecords(self):
        lookup = FakeLookup(records={"example.com": ["v=spf1 -all", "V=SPF1 ~all"]})
        result = checkmailauth.spf.check_spf("example.com", lookup=lookup)
        self.assertFalse(result.found)
        self.assertIn("multiple", result.error)
        self.assertEqual(result.raw_record, "v=spf1 -all | V=SPF1 ~all")

    def testSPFLookupFailure(self):
        lookup, _ = _txt_lookup(
            errors={"example.com": dns.exception.Timeout(timeout=2.0)}
        )
        result = checkmailauth.spf.check_spf("example.com", lookup=lookup)
        self.assertFalse(result.found)
        self.assertIsNotNone(result.error)

    def testParseSPFTerms(self):
        SPFQualifier = checkmailauth.spf.SPFQualifier
        SPFTermKind = checkmailauth.spf.SPFTermKind
        lookup = FakeLookup(
            records={"example.com": ["v=spf1 include:_spf.example.com ~all"]}
        )
        result = checkmailauth.spf.check_spf("example.com", lookup=lookup)
        self.assertTrue(result.found)
        self.assertEqual(
            [(t.qualifier, t.name, t.value, t.kind) for t in result.terms],
            [
                (
                    SPFQualifier.PASS,
                    "include",
                    "_spf.example.com",
                    SPFTermKind.MECHANISM,
                ),
                (SPFQualifier.SOFTFAIL, "all", "", SPFTermKind.MECHANISM),
            ],
        )
        self.assertEqual(result.all_qualifier, SPFQualifier.SOFTFAIL)
        self.assertEqual(result.includes, ["_spf.example.com"])

    def testSPFModifiersAndUnknownTerms(self):
        SPFTermKind = checkmailauth.spf.SPFTermKind
        parsed = checkmailauth.spf.parse_spf_record(
            "v=spf1 redirect=_spf.example.com foo:bar", "example.com"
        )
        kinds = [(term.name, term.kind) for term in parsed["terms"]]
        self.assertEqual(
            kinds,
            [("redirect", SPFTermKind.MODIFIER), ("foo", SPFTermKind.UNKNOWN)],
        )
        self.assertIn(
            "foo:bar is not a known SPF mechanism or modifier.", parsed["warnings"]
        )

    def testUppercaseSPFMechanism(self):
        """Treat uppercase SPF mechanisms as valid"""
        spf_record = "v=spf1 IP4:147.75.8.208 -ALL"
        domain = "example.no"

        results = checkmailauth.spf.parse_spf_record(spf_record, domain)

        self.assertEqual(len(results["warnings"]), 0)
        self.assertEqual(results["terms"][0].name, "ip4")
        self.assertEqual(
            results["terms"][1].qualifier, checkmailauth.spf.SPFQualifier.FAIL
        )

    def testJunkAfterAll(self):
        """Warn about anything after the all mechanism"""
        rec = "v=spf1 ip4:213.5.39.110 -all MS=83859DAEBD1978F9A7A67D3"
        domain = "avd.dk"

        parsed_record = checkmailauth.spf.parse_spf_record(rec, domain)
        self.assertIn(
            "Any text after the all mechanism is ignored.", parsed_record["warnings"]
        )

    def testSPFSyntaxErrors(self):
        """SPF record syntax errors are marked in a warning"""
        spf_record = "v=spf1 mx a:mail.cohaesio.net include: trustpilotservice.com ~all"
        domain = "2021.ai"
        parsed_record = checkmailauth.spf.parse_spf_record(spf_record, domain)
        self.assertTrue(
            any(SYNTAX_ERROR_MARKER in warning for warning in parsed_record["warnings"])
        )
        self.assertEqual(len(parsed_record["terms"]), 5)

    def testDMARCMixedFormatting(self):
        """DMARC records with extra spaces and mixed case are still valid"""
        examples = [
            "v=DMARC1;p=ReJect",
            "v = DMARC1;p=reject;",
            "v = DMARC1\t;\tp=reject\t;",
            "v = DMARC1\t;\tp\t\t\t=\t\t\treject\t;",
            "V=DMARC1;p=reject;",
        ]

        for example in examples:
            parsed_record = checkmailauth.dmarc.parse_dmarc_record(example, "")
            self.assertEqual(parsed_record["errors"], [], example)

    def testDMARCValidation(self):
        """Out of range values and malformed URIs are errors"""
        record = "v=DMARC1; p=reject; rua=mailto:a@example.com,bad-uri; pct=150"
        parsed_record = checkmailauth.dmarc.parse_dmarc_record(record, "example.com")
        errors = parsed_record["errors"]
        self.assertTrue(any("pct" in error for error in errors))
        self.assertTrue(any("bad-uri" in error for error in errors))
        for message in errors + parsed_record["warnings"]:
            self.assertNotIn("a@example.com", message)

    def testDMARCMissingPolicy(self):
        lookup = FakeLookup(
            records={"_dmarc.example.com": ["v=DMARC1; rua=mailto:a@example.com"]}
        )
        result = checkmailauth.dmarc.check_dmarc("example.com", lookup=lookup)
        self.assertTrue(result.found)
        self.assertFalse(result.is_valid)
        self.assertTrue(any('("p")' in error for error in result.validation_errors))

    def testInvalidDMARCPolicyValue(self):
        record = "v=DMARC1; p=foo; rua=mailto:dmarc@example.com"
        parsed_record = checkmailauth.dmarc.parse_dmarc_record(record, "example.com")
        self.assertEqual(
            parsed_record["errors"],
            [
                "Tag p must have one of the following values: "
                "none,quarantine,reject - not foo"
            ],
        )

    def testDMARCInvalidVersionAndAlignment(self):
        record = "v=DMARC2; p=none; adkim=x; aspf=S"
        parsed_record = checkmailauth.dmarc.parse_dmarc_record(record, "example.com")
        self.assertEqual(
            parsed_record["errors"],
            [
                "The v tag must be DMARC1 - not DMARC2",
                "Tag adkim must be r or s - not x",
            ],
        )

    def testDMARCReportAddresses(self):
        """Size limits are allowed and bad addresses are errors"""
        record = (
            "v=DMARC1; p=none; rua=mailto:a@example.com!10m; "
            "ruf=mailto:not-an-address, https://example.com/report"
        )
        parsed_record = checkmailauth.dmarc.parse_dmarc_record(record, "example.com")
        self.assertEqual(len(parsed_record["errors"]), 1)
        self.assertIn("mailto:not-an-address", parsed_record["errors"][0])
        self.assertEqual(
            parsed_record["warnings"],
            ["https://example.com/report in the ruf tag is not a mailto: URI."],
        )

    def testDMARCUnknownAndDuplicateTags(self):
        lookup = FakeLookup(
            records={"_dmarc.example.com": ["v=DMARC1; p=none; foo=bar; p=reject"]}
        )
        result = checkmailauth.dmarc.check_dmarc("example.com", lookup=lookup)
        self.assertEqual(len(result.tags), 4)
        self.assertFalse(result.get_tag("foo").is_known)
        self.assertIn("foo is not a valid DMARC tag.", result.validation_warnings)
        self.assertIn(
            "Duplicate p tags are not permitted.", result.validation_warnings
        )
        self.assertEqual(result.policy, checkmailauth.dmarc.DMARCPolicy.NONE)

    def testDMARCAccessors(self):
        DMARCPolicy = checkmailauth.dmarc.DMARCPolicy
        DMARCAlignment = checkmailauth.dmarc.DMARCAlignment
        lookup = FakeLookup(
            records={
                "_dmarc.example.com": [
                    "v=DMARC1; p=Quarantine; sp=bogus; adkim=s; pct=abc; "
                    "ri=3600; rua=mailto:a@example.com, mailto:b@example.com"
                ]
            }
        )
        result = checkmailauth.dmarc.check_dmarc("example.com", lookup=lookup)
        self.assertEqual(result.policy, DMARCPolicy.QUARANTINE)
        self.assertEqual(result.subdomain_policy, DMARCPolicy.UNKNOWN)
        self.assertEqual(result.alignment_dkim, DMARCAlignment.STRICT)
        self.assertEqual(result.alignment_spf, DMARCAlignment.RELAXED)
        self.assertEqual(result.percentage, 100)
        self.assertEqual(result.report_interval, 3600)
        self.assertEqual(result.failure_options, "0")
        self.assertEqual(
            result.report_aggregate_uris,
            ["mailto:a@example.com", "mailto:b@example.com"],
        )
        self.assertEqual(result.report_forensic_uris, [])

    def testDMARCAccessorDefaults(self):
        lookup = FakeLookup(records={"_dmarc.example.com": ["v=DMARC1; p=none"]})
        result = checkmailauth.dmarc.check_dmarc("example.com", lookup=lookup)
        self.assertTrue(result.is_valid)
        self.assertIsNone(result.subdomain_policy)
        self.assertEqual(result.percentage, 100)
        self.assertEqual(result.report_interval, 86400)

    def testDMARCMissingVersion(self):
        parsed_record = checkmailauth.dmarc.parse_dmarc_record("p=none", "example.com")
        self.assertEqual(
            parsed_record["errors"],
            ['The record is missing the required version ("v") tag.'],
        )

    def testDMARCEmptyPolicy(self):
        """An empty p tag is reported the same way as a missing one"""
        parsed_record = checkmailauth.dmarc.parse_dmarc_record(
            "v=DMARC1; p=", "example.com"
        )
        self.assertEqual(
            parsed_record["errors"],
            ['The record is missing the required policy ("p") tag.'],
        )
        self.assertEqual(parsed_record["tags"][1].name, "p")
        self.assertEqual(parsed_record["tags"][1].value, "")

    def testInvalidDMARCSubdomainPolicy(self):
        parsed_record = checkmailauth.dmarc.parse_dmarc_record(
            "v=DMARC1; p=none; sp=bogus", "example.com"
        )
        self.assertEqual(
            parsed_record["errors"],
            [
                "Tag sp must have one of the following values: "
                "none,quarantine,reject - not bogus"
            ],
        )

    def testDMARCPercentage(self):
        """pct must be an unsigned integer between 0 and 100"""
        examples = {
            "abc": "The value of the pct tag must be an integer - not abc",
            "+50": "The value of the pct tag must be an integer - not +50",
            "-0": "The value of the pct tag must be an integer - not -0",
            "101": "pct value must be an integer between 0 and 100 - not 101",
        }
        for pct, error in examples.items():
            parsed_record = checkmailauth.dmarc.parse_dmarc_record(
                f"v=DMARC1; p=none; pct={pct}", "example.com"
            )
            self.assertEqual(parsed_record["errors"], [error])

        for pct in ["0", "50", "100"]:
            parsed_record = checkmailauth.dmarc.parse_dmarc_record(
                f"v=DMARC1; p=none; pct={pct}", "example.com"
            )
            self.assertEqual(parsed_record["errors"], [])

    def testDMARCEmptyReportURI(self):
        parsed_record = checkmailauth.dmarc.parse_dmarc_record(
            "v=DMARC1; p=none; rua=mailto:a@example.com,", "example.com"
        )
        self.assertEqual(parsed_record["errors"], [])
        self.assertEqual(
            parsed_record["warnings"], ["The rua tag contains an empty URI."]
        )

    def testDMARCSingleLookup(self):
        """Only the _dmarc name of the domain is queried by default"""
        lookup = FakeLookup(
            records={
                "example.com": ["v=DMARC1; p=none"],
                "_dmarc.example.com": ["v=DMARC1; p=reject"],
            }
        )
        result = checkmailauth.dmarc.check_dmarc("example.com", lookup=lookup)
        self.assertTrue(result.found)
        self.assertEqual(result.location, "example.com")
        self.assertEqual(result.validation_warnings, ())
        self.assertEqual(lookup.calls, 1)

        lookup = FakeLookup(records={"_dmarc.example.com": ["v=DMARC1; p=reject"]})
        result = checkmailauth.dmarc.check_dmarc("mail.example.com", lookup=lookup)
        self.assertFalse(result.found)
        self.assertIsNone(result.error)
        self.assertEqual(lookup.calls, 1)

    def testDMARCBaseDomainFallback(self):
        lookup = FakeLookup(records={"_dmarc.example.com": ["v=DMARC1; p=reject"]})
        result = checkmailauth.dmarc.check_dmarc(
            "mail.example.com", lookup=lookup, fallback_to_base_domain=True
        )
        self.assertTrue(result.found)
        self.assertEqual(result.domain, "mail.example.com")
        self.assertEqual(result.location, "example.com")
        self.assertEqual(lookup.calls, 2)

    def testDMARCNotFound(self):
        lookup = FakeLookup()
        result = checkmailauth.dmarc.check_dmarc(
            "mail.example.com", lookup=lookup, fallback_to_base_domain=True
        )
        self.assertFalse(result.found)
        self.assertIsNone(result.error)

    def testDMARCRecordAtRoot(self):
        lookup = FakeLookup(
            records={
                "example.com": ["v=DMARC1; p=none"],
                "_dmarc.example.com": ["v=DMARC1; p=none"],
            }
        )
        result = checkmailauth.dmarc.check_dmarc(
            "example.com", lookup=lookup, check_root_record=True
        )
        self.assertIn(
            "DMARC record at root of example.com has no effect.",
            result.validation_warnings,
        )
        self.assertEqual(lookup.calls, 2)

    def testMultipleDMARCRecords(self):
        lookup = FakeLookup(
            records={"_dmarc.example.com": ["v=DMARC1; p=none", "v=DMARC1; p=reject"]}
        )
        result = checkmailauth.dmarc.check_dmarc("example.com", lookup=lookup)
        self.assertFalse(result.found)
        self.assertIn("Multiple DMARC", result.error)
        self.assertEqual(result.raw_record, "v=DMARC1; p=none ; v=DMARC1; p=reject")

    def testDMARCLookupFailure(self):
        lookup, _ = _txt_lookup(
            errors={"_dmarc.example.com": dns.exception.Timeout(timeout=2.0)}
        )
        result = checkmailauth.dmarc.check_dmarc("example.com", lookup=lookup)
        self.assertFalse(result.found)
        self.assertIsNotNone(result.error)

    def testDKIMProbesEverySelector(self):
        """All selectors are probed, and every published one is reported"""
        records = {
            "selector1._domainkey.example.com": ["v=DKIM1; k=rsa; p=AAAA"],
            "google._domainkey.example.com": ["v=DKIM1; p=BBBB"],
        }
        for selectors in [DKIM_SELECTORS, tuple(reversed(DKIM_SELECTORS))]:
            lookup = FakeLookup(records=records)
            report = checkmailauth.dkim.find_dkim_selectors(
                "example.com", selectors=selectors, lookup=lookup
            )
            self.assertEqual(sorted(report.selectors), ["google", "selector1"])
            self.assertEqual(len(report.results), 2)
            self.assertEqual(lookup.calls, len(DKIM_SELECTORS))
            self.assertEqual(report.selectors_probed, len(DKIM_SELECTORS))

    def testDKIMLookupFailures(self):
        """Failures other than NXDOMAIN are reported per selector"""
        lookup, resolver = _txt_lookup(
            records={"google._domainkey.example.com": ["v=DKIM1; p=BBBB"]},
            errors={
                "selector1._domainkey.example.com": dns.exception.Timeout(timeout=2.0)
            },
        )
        report = checkmailauth.dkim.find_dkim_selectors("example.com", lookup=lookup)
        self.assertEqual(len(resolver.queries), len(DKIM_SELECTORS))
        results = {result.selector: result for result in report.results}
        self.assertEqual(sorted(results), ["google", "selector1"])
        self.assertTrue(results["google"].found)
        self.assertFalse(results["selector1"].found)
        self.assertIn("selector1", results["selector1"].error)

    def testDKIMUnexpectedLookupFailure(self):
        """Any lookup failure stays with its own selector"""
        lookup = FakeLookup(
            records={"google._domainkey.example.com": ["v=DKIM1; p=BBBB"]},
            errors={"k1._domainkey.example.com": OSError("socket")},
        )
        report = checkmailauth.dkim.find_dkim_selectors("example.com", lookup=lookup)
        self.assertEqual(lookup.calls, len(DKIM_SELECTORS))
        results = {result.selector: result for result in report.results}
        self.assertEqual(sorted(results), ["google", "k1"])
        self.assertTrue(results["google"].found)
        self.assertFalse(results["k1"].found)
        self.assertEqual(results["k1"].error, "Error for selector k1: socket")

    def testDKIMUnknownTags(self):
        """DKIM tags are stored as they are, without validation"""
        lookup = FakeLookup(
            records={"s1._domainkey.example.com": ["v=DKIM1; foo=bar; p=AAAA"]}
        )
        result = checkmailauth.dkim.check_dkim_selector(
            "example.com", "s1", lookup=lookup
        )
        self.assertTrue(result.found)
        self.assertIsNone(result.error)
        self.assertTrue(all(tag.is_known for tag in result.tags))
        self.assertEqual(result.get_tag("foo").value, "bar")

    def testDKIMEmptyDomain(self):
        lookup = FakeLookup()
        report = checkmailauth.dkim.find_dkim_selectors("", lookup=lookup)
        self.assertEqual(lookup.calls, 0)
        self.assertEqual(report.selectors_probed, 0)
        self.assertFalse(report.found)

    def testDKIMFirstRecordWins(self):
        lookup = FakeLookup(
            records={
                "s1._domainkey.example.com": [
                    "some other text",
                    "v=DKIM1; p=AAAA",
                    "v=DKIM1; p=BBBB",
                ]
            }
        )
        result = checkmailauth.dkim.check_dkim_selector(
            "example.com", "s1", lookup=lookup
        )
        self.assertTrue(result.found)
        self.assertEqual(result.raw_record, "v=DKIM1; p=AAAA")

    def testDKIMRevokedKey(self):
        """An empty p tag is a revoked key, not an error"""
        lookup = FakeLookup(
            records={"s1._domainkey.example.com": ["v=DKIM1; k=rsa; t=y:s; p="]}
        )
        result = checkmailauth.dkim.check_dkim_selector(
            "example.com", "s1", lookup=lookup
        )
        self.assertTrue(result.found)
        self.assertIsNone(result.error)
        self.assertTrue(result.revoked)
        self.assertTrue(result.testing)
        self.assertIsNone(result.key_size)

    def testDKIMKeySize(self):
        public_key = _rsa_public_key()
        # Long keys are often split over several TXT strings
        record = f"v=DKIM1; p={public_key[:100]} {public_key[100:]}"
        lookup = FakeLookup(records={"s1._domainkey.example.com": [record]})
        result = checkmailauth.dkim.check_dkim_selector(
            "example.com", "s1", lookup=lookup
        )
        self.assertEqual(result.key_type, "rsa")
        self.assertFalse(result.revoked)
        self.assertFalse(result.testing)
        self.assertEqual(result.key_size, 2048)

    def testDKIMEd25519KeySize(self):
        raw_key = (
            ed25519.Ed25519PrivateKey.generate()
            .public_key()
            .public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
        )
        record = f"v=DKIM1; k=ed25519; p={base64.b64encode(raw_key).decode()}"
        lookup = FakeLookup(records={"s1._domainkey.example.com": [record]})
        result = checkmailauth.dkim.check_dkim_selector(
            "example.com", "s1", lookup=lookup
        )
        self.assertEqual(result.key_type, "ed25519")
        self.assertEqual(result.key_size, 256)

    def testDKIMUnreadableKey(self):
        lookup = FakeLookup(records={"s1._domainkey.example.com": ["v=DKIM1; p=AAAA"]})
        result = checkmailauth.dkim.check_dkim_selector(
            "example.com", "s1", lookup=lookup
        )
        self.assertIsNone(result.key_size)

    def testCheckDomain(self):
        lookup, _ = _txt_lookup(
            records={
                "example.com": ["v=spf1 mx -all"],
                "_dmarc.example.com": ["v=DMARC1; p=reject"],
                "selector1._domainkey.example.com": ["v=DKIM1; p="],
            }
        )
        results = checkmailauth.check_domain(
            "https://WWW.Example.com/index.html", lookup=lookup
        )
        self.assertEqual(results.domain, "www.example.com")
        self.assertEqual(results.base_domain, "example.com")
        self.assertFalse(results.spf.found)
        self.assertFalse(results.dmarc.found)
        self.assertFalse(results.dkim.found)

        results = checkmailauth.check_domain("example.com", lookup=lookup)
        self.assertTrue(results.spf.found)
        self.assertTrue(results.dmarc.found)
        self.assertEqual(results.dkim.selectors, ["selector1"])

    def testCheckDomainIsolatesFailures(self):
        """A failed SPF lookup does not stop the other checks"""
        lookup, _ = _txt_lookup(
            records={"_dmarc.example.com": ["v=DMARC1; p=none"]},
            errors={"example.com": dns.exception.Timeout(timeout=2.0)},
        )
        results = checkmailauth.check_domain("example.com", lookup=lookup)
        self.assertIsNotNone(results.spf.error)
        self.assertTrue(results.dmarc.found)
        self.assertEqual(results.dkim.selectors_probed, len(DKIM_SELECTORS))

    def testCheckDomainInvalid(self):
        lookup = FakeLookup()
        with self.assertLogs(level="WARNING"):
            results = checkmailauth.check_domain("localhost", lookup=lookup)
        self.assertIsNone(results)
        self.assertEqual(lookup.calls, 0)

    def testCheckDomains(self):
        """Domains are de-duplicated, sorted, and invalid ones are skipped"""
        resolver = FakeResolver(
            records={"example.com": [FakeTXT("v=spf1 -all")]}
        )
        with self.assertLogs(level="WARNING"):
            results = checkmailauth.check_domains(
                ["Example.com", "https://example.com/x", "nope", "b.example.org"],
                resolver=resolver,
            )
        self.assertEqual(
            [result.domain for result in results], ["b.example.org", "example.com"]
        )
        self.assertTrue(results[1].spf.found)

        results = checkmailauth.check_domains(["example.com"], resolver=resolver)
        self.assertIsInstance(results, checkmailauth.DomainResults)


if __name__ == "__main__":
    unittest.main(verbosity=2)
