# -*- coding: utf-8 -*-
"""Sender Policy framework (SPF) record retrieval and parsing"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from time import perf_counter
from typing import Optional, TypedDict
from collections.abc import Sequence

import dns.resolver
from dns.nameserver import Nameserver
import pyleri

from checkmailauth._constants import DEFAULT_DNS_TIMEOUT, SYNTAX_ERROR_MARKER
from checkmailauth.utils import DNSException, DNSExceptionNXDOMAIN, TXTLookup

"""Copyright 2019-2025 Sean Whalen

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

   https://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License."""

SPF_VERSION_TAG_REGEX_STRING = "v=spf1"

SPF_MECHANISM_REGEX_STRING = (
    r"([+\-~?])?"
    r"(mx:?|ip4:?|ip6:?|exists:?|include:?|all|a:?|redirect=|exp=|ptr:?)"
    r"([\w+/_.:\-{}%]*)"
)
AFTER_ALL_REGEX_STRING = r"(?:^|\s)[+\-~?]?all\s+(.+)"

SPF_VERSION_REGEX = re.compile(r"^v=spf1", re.IGNORECASE)
# https://datatracker.ietf.org/doc/html/rfc7208#section-4.5
# The version section is terminated by either an SP character or the end of
# the record
SPF_VERSION_TERMINATED_REGEX = re.compile(r"^v=spf1(?:\s|$)", re.IGNORECASE)
AFTER_ALL_REGEX = re.compile(AFTER_ALL_REGEX_STRING, re.IGNORECASE)
NAME_VALUE_SEPARATOR_REGEX = re.compile(r"[:=]")

SPF_RECORD_SEPARATOR = " | "

SPF_MECHANISMS = frozenset(
    ["all", "include", "a", "mx", "ptr", "ip4", "ip6", "exists"]
)
SPF_MODIFIERS = frozenset(["redirect", "exp"])


class SPFQualifier(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    SOFTFAIL = "softfail"
    NEUTRAL = "neutral"


class SPFTermKind(str, Enum):
    MECHANISM = "mechanism"
    MODIFIER = "modifier"
    UNKNOWN = "unknown"


spf_qualifiers: dict[str, SPFQualifier] = {
    "": SPFQualifier.PASS,
    "?": SPFQualifier.NEUTRAL,
    "+": SPFQualifier.PASS,
    "-": SPFQualifier.FAIL,
    "~": SPFQualifier.SOFTFAIL,
}


class SPFError(Exception):
    """Raised when a fatal SPF error occurs"""

    def __init__(self, msg: str, data: Optional[dict] = None):
        """
        Args:
            msg (str): The error message
            data (dict): A dictionary of data to include in the output
        """
        self.data = data
        Exception.__init__(self, msg)


class SPFRecordNotFound(SPFError):
    """Raised when an SPF record could not be found"""


class MultipleSPFTXTRecords(SPFError):
    """Raised when multiple TXT spf1 records are found"""


class _SPFGrammar(pyleri.Grammar):
    """Defines Pyleri grammar for SPF records"""

    version_tag = pyleri.Regex(SPF_VERSION_TAG_REGEX_STRING, re.IGNORECASE)
    mechanism = pyleri.Regex(SPF_MECHANISM_REGEX_STRING, re.IGNORECASE)
    START = pyleri.Sequence(version_tag, pyleri.Repeat(mechanism))


@dataclass(frozen=True)
class SPFTerm:
    qualifier: SPFQualifier
    name: str
    value: str
    kind: SPFTermKind
    raw: str


class ParsedSPFRecord(TypedDict):
    terms: list[SPFTerm]
    warnings: list[str]


@dataclass(frozen=True)
class SPFResult:
    """The outcome of an SPF check for one domain"""

    domain: str
    found: bool = False
    raw_record: str = ""
    terms: tuple[SPFTerm, ...] = ()
    error: Optional[str] = None
    warnings: tuple[str, ...] = ()
    elapsed_ms: int = 0

    @property
    def all_qualifier(self) -> Optional[SPFQualifier]:
        """The qualifier of the ``all`` mechanism, if there is one"""
        for term in self.terms:
            if term.name == "all":
                return term.qualifier
        return None

    @property
    def redirect(self) -> Optional[str]:
        for term in self.terms:
            if term.name == "redirect":
                return term.value
        return None

    @property
    def includes(self) -> list[str]:
        return [term.value for term in self.terms if term.name == "include"]


def query_spf_record(domain: str, *, lookup: TXTLookup) -> str:
    """
    Queries DNS for an SPF record

    Args:
        domain (str): A domain name
        lookup (TXTLookup): The TXT lookup to use

    Returns:
        str: The SPF record

    Raises:
        :exc:`checkmailauth.spf.SPFRecordNotFound`
        :exc:`checkmailauth.spf.MultipleSPFTXTRecords`
        :exc:`checkmailauth.spf.SPFError`
    """
    logging.debug(f"Checking for a SPF record on {domain}")
    try:
        answers = lookup.query(domain)
    except DNSExceptionNXDOMAIN:
        raise SPFRecordNotFound("The domain does not exist.")
    except DNSException as error:
        raise SPFError(str(error))

    spf_txt_records = [record for record in answers if SPF_VERSION_REGEX.match(record)]
    if len(spf_txt_records) > 1:
        raise MultipleSPFTXTRecords(
            "The domain has multiple SPF TXT records",
            data={"record": SPF_RECORD_SEPARATOR.join(spf_txt_records)},
        )
    if len(spf_txt_records) == 0:
        raise SPFRecordNotFound("An SPF record does not exist.")

    return spf_txt_records[0]


def parse_spf_term(token: str) -> SPFTerm:
    """
    Parses a single SPF term, such as ``~all`` or ``include:_spf.example.com``

    Args:
        token (str): A whitespace-delimited SPF term

    Returns:
        SPFTerm: The parsed term
    """
    qualifier = SPFQualifier.PASS
    term = token
    if term[:1] in spf_qualifiers:
        qualifier = spf_qualifiers[term[:1]]
        term = term[1:]
    separator = NAME_VALUE_SEPARATOR_REGEX.search(term)
    if separator:
        name = term[: separator.start()]
        value = term[separator.end() :]
    else:
        name = term
        value = ""
    name = name.lower()
    if name in SPF_MECHANISMS:
        kind = SPFTermKind.MECHANISM
    elif name in SPF_MODIFIERS:
        kind = SPFTermKind.MODIFIER
    else:
        kind = SPFTermKind.UNKNOWN

    return SPFTerm(qualifier=qualifier, name=name, value=value, kind=kind, raw=token)


def parse_spf_record(
    record: str,
    domain: str = "",
    *,
    syntax_error_marker: str = SYNTAX_ERROR_MARKER,
) -> ParsedSPFRecord:
    """
    Parses an SPF record into its terms, without resolving ``include`` or
    ``redirect`` targets

    Args:
        record (str): An SPF record
        domain (str): The domain that the SPF record came from
        syntax_error_marker (str): The maker for pointing out syntax errors

    Returns:
        dict: A ``dict`` with the following keys:
            - ``terms`` - A ``list`` of :class:`SPFTerm` in record order
            - ``warnings`` - A ``list`` of warnings
    """
    logging.debug(f"Parsing the SPF record on {domain}")
    warnings = []

    tokens = record.split()
    if len(tokens) > 0 and SPF_VERSION_REGEX.match(tokens[0]):
        tokens = tokens[1:]
    if SPF_VERSION_REGEX.match(record) and not SPF_VERSION_TERMINATED_REGEX.match(
        record
    ):
        warnings.append(
            "The v=spf1 version tag must be followed by a space or the end of "
            "the record."
        )
    terms = [parse_spf_term(token) for token in tokens]

    # Grammar-level syntax checking stops at the first "all" mechanism;
    # anything after it gets its own warning
    grammar_record = record
    after_all_match = AFTER_ALL_REGEX.search(record)
    if after_all_match:
        grammar_record = record[: after_all_match.start(1)].rstrip()
        warnings.append("Any text after the all mechanism is ignored.")

    parsed_record = _SPFGrammar().parse(grammar_record)
    if not parsed_record.is_valid:
        pos = parsed_record.pos
        expecting: list[str] = list(
            map(lambda x: str(x).strip('"'), list(parsed_record.expecting))
        )
        expecting_str = " or ".join(expecting)
        marked_record = record[:pos] + syntax_error_marker + record[pos:]
        warnings.append(
            f"Expected {expecting_str} at position {pos} "
            f"(marked with {syntax_error_marker}) in: {marked_record}"
        )

    for term in terms:
        if term.kind == SPFTermKind.UNKNOWN:
            warnings.append(f"{term.raw} is not a known SPF mechanism or modifier.")

    results: ParsedSPFRecord = {"terms": terms, "warnings": warnings}

    return results


def check_spf(
    domain: str,
    *,
    lookup: Optional[TXTLookup] = None,
    nameservers: Optional[Sequence[str | Nameserver]] = None,
    resolver: Optional[dns.resolver.Resolver] = None,
    timeout: float = DEFAULT_DNS_TIMEOUT,
) -> SPFResult:
    """
    Returns the parsed SPF record of a domain, or why there is none

    Args:
        domain (str): A domain name
        lookup (TXTLookup): The TXT lookup to use
        nameservers (list): A list of nameservers to query
        resolver (dns.resolver.Resolver): A resolver object to use for DNS requests
        timeout (float): number of seconds to wait for an answer from DNS

    Returns:
        SPFResult: ``found`` is ``True`` only when exactly one SPF record
        exists. A missing record leaves ``error`` unset; multiple records or
        a failed lookup set it.
    """
    if lookup is None:
        lookup = TXTLookup(nameservers=nameservers, resolver=resolver, timeout=timeout)
    start = perf_counter()
    found = False
    raw_record = ""
    terms = []
    warnings = []
    error = None
    try:
        raw_record = query_spf_record(domain, lookup=lookup)
        parsed_spf = parse_spf_record(raw_record, domain)
        terms = parsed_spf["terms"]
        warnings = parsed_spf["warnings"]
        found = True
    except SPFRecordNotFound as not_found:
        logging.debug(f"{domain}: {not_found}")
    except SPFError as spf_error:
        error = str(spf_error)
        if spf_error.data and "record" in spf_error.data:
            raw_record = spf_error.data["record"]

    return SPFResult(
        domain=domain,
        found=found,
        raw_record=raw_record,
        terms=tuple(terms),
        error=error,
        warnings=tuple(warnings),
        elapsed_ms=round((perf_counter() - start) * 1000),
    )
