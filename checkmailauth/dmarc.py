# -*- coding: utf-8 -*-
"""DMARC record retrieval and validation"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from time import perf_counter
from typing import Optional, TypedDict, Union
from collections.abc import Sequence

import dns.resolver
from dns.nameserver import Nameserver

from checkmailauth._constants import DEFAULT_DNS_TIMEOUT
from checkmailauth.utils import (
    DNSException,
    DNSExceptionNXDOMAIN,
    Tag,
    TXTLookup,
    get_base_domain,
    parse_tags,
)

"""Copyright 2019-2023 Sean Whalen

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

   https://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License."""

DMARC_VERSION_REGEX = re.compile(r"^v=DMARC1", re.IGNORECASE)
DMARC_RECORD_SEPARATOR = " ; "
INTEGER_REGEX = re.compile(r"^[0-9]+$")
URI_SCHEME_REGEX = re.compile(r"^[a-z][a-z0-9+.\-]*:", re.IGNORECASE)
REPORT_ADDRESS_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
SIZE_LIMIT_REGEX = re.compile(r"!\d+[kmgt]?$", re.IGNORECASE)
MAILTO_SCHEME = "mailto:"


class DMARCPolicy(str, Enum):
    NONE = "none"
    QUARANTINE = "quarantine"
    REJECT = "reject"
    UNKNOWN = "unknown"


class DMARCAlignment(str, Enum):
    RELAXED = "r"
    STRICT = "s"


class DMARCError(Exception):
    """Raised when a fatal DMARC error occurs"""

    def __init__(self, msg: str, data: Optional[dict] = None):
        """
        Args:
            msg (str): The error message
            data (dict): A dictionary of data to include in the results
        """
        self.data = data
        Exception.__init__(self, msg)


class DMARCRecordNotFound(DMARCError):
    """Raised when a DMARC record could not be found"""


class MultipleDMARCRecords(DMARCError):
    """Raised when multiple DMARC records are found, in violation of
    RFC 7489, § 6.6.3"""


class DMARCTagMapItem(TypedDict, total=False):
    name: str
    default: Union[str, int]


dmarc_tags: dict[str, DMARCTagMapItem] = {
    "v": {"name": "Protocol Version"},
    "p": {"name": "Requested Mail Receiver Policy"},
    "sp": {"name": "Requested Mail Receiver Policy for All Subdomains"},
    "adkim": {"name": "DKIM Alignment Mode", "default": "r"},
    "aspf": {"name": "SPF alignment mode", "default": "r"},
    "pct": {"name": "Percentage", "default": 100},
    "rua": {"name": "Aggregate Feedback Addresses"},
    "ruf": {"name": "Forensic Feedback Addresses"},
    "ri": {"name": "Report Interval", "default": 86400},
    "fo": {"name": "Failure Reporting Options", "default": "0"},
    "rf": {"name": "Report Format", "default": "afrf"},
}

dmarc_policies = ("none", "quarantine", "reject")
dmarc_alignment_modes = ("r", "s")


class DMARCRecordQueryResults(TypedDict):
    record: str
    location: str
    warnings: list[str]


class ParsedDMARCRecord(TypedDict):
    tags: list[Tag]
    errors: list[str]
    warnings: list[str]


@dataclass(frozen=True)
class DMARCResult:
    """The outcome of a DMARC check for one domain

    ``location`` is the domain whose ``_dmarc`` name held the record; it
    differs from ``domain`` when the base domain's record applies.
    """

    domain: str
    found: bool = False
    raw_record: str = ""
    location: Optional[str] = None
    tags: tuple[Tag, ...] = ()
    validation_errors: tuple[str, ...] = ()
    validation_warnings: tuple[str, ...] = ()
    error: Optional[str] = None
    elapsed_ms: int = 0

    @property
    def is_valid(self) -> bool:
        return len(self.validation_errors) == 0

    def get_tag(self, name: str) -> Optional[Tag]:
        """Returns the first tag with the given name"""
        name = name.lower()
        for tag in self.tags:
            if tag.name == name:
                return tag
        return None

    def _tag_value(self, name: str) -> Optional[str]:
        tag = self.get_tag(name)
        if tag is None:
            return None
        return tag.value

    @property
    def policy(self) -> DMARCPolicy:
        return _parse_policy(self._tag_value("p"))

    @property
    def subdomain_policy(self) -> Optional[DMARCPolicy]:
        value = self._tag_value("sp")
        if value is None:
            return None
        return _parse_policy(value)

    @property
    def alignment_dkim(self) -> DMARCAlignment:
        return _parse_alignment(self._tag_value("adkim"))

    @property
    def alignment_spf(self) -> DMARCAlignment:
        return _parse_alignment(self._tag_value("aspf"))

    @property
    def percentage(self) -> int:
        return _parse_integer(self._tag_value("pct"), dmarc_tags["pct"]["default"])

    @property
    def report_interval(self) -> int:
        return _parse_integer(self._tag_value("ri"), dmarc_tags["ri"]["default"])

    @property
    def failure_options(self) -> str:
        value = self._tag_value("fo")
        if value is None:
            return dmarc_tags["fo"]["default"]
        return value

    @property
    def report_aggregate_uris(self) -> list[str]:
        return _split_uris(self._tag_value("rua"))

    @property
    def report_forensic_uris(self) -> list[str]:
        return _split_uris(self._tag_value("ruf"))


def _parse_policy(value: Optional[str]) -> DMARCPolicy:
    if value is not None and value.lower() in dmarc_policies:
        return DMARCPolicy(value.lower())
    return DMARCPolicy.UNKNOWN


def _parse_alignment(value: Optional[str]) -> DMARCAlignment:
    if value is not None and value.lower() == "s":
        return DMARCAlignment.STRICT
    return DMARCAlignment.RELAXED


def _parse_integer(value: Optional[str], default: int) -> int:
    if value is None or not INTEGER_REGEX.match(value):
        return default
    return int(value)


def _split_uris(value: Optional[str]) -> list[str]:
    if value is None:
        return []
    uris = map(lambda u: u.strip(), value.split(","))
    return [uri for uri in uris if uri != ""]


def _query_dmarc_record(domain: str, *, lookup: TXTLookup) -> Optional[str]:
    """
    Queries DNS for a DMARC record

    Args:
        domain (str): A domain name
        lookup (TXTLookup): The TXT lookup to use

    Returns:
        str: A record string or None
    """
    target = f"_dmarc.{domain}"
    try:
        records = lookup.query(target)
    except DNSExceptionNXDOMAIN:
        return None
    except DNSException as error:
        raise DMARCError(str(error))

    dmarc_records = [r for r in records if DMARC_VERSION_REGEX.match(r.strip())]
    if len(dmarc_records) > 1:
        raise MultipleDMARCRecords(
            "Multiple DMARC policy records are not permitted - "
            "https://tools.ietf.org/html/rfc7489#section-6.6.3",
            data={
                "record": DMARC_RECORD_SEPARATOR.join(dmarc_records),
                "location": domain,
            },
        )
    if len(dmarc_records) == 1:
        return dmarc_records[0]
    return None


def query_dmarc_record(
    domain: str,
    *,
    lookup: TXTLookup,
    fallback_to_base_domain: bool = False,
    check_root_record: bool = False,
) -> DMARCRecordQueryResults:
    """
    Queries DNS for a DMARC record

    Only ``_dmarc.<domain>`` is queried unless one of the optional checks
    is turned on.

    Args:
        domain (str): A domain name
        lookup (TXTLookup): The TXT lookup to use
        fallback_to_base_domain (bool): Query the base domain when the
                                        domain has no record
        check_root_record (bool): Warn about a DMARC record published at
                                  the domain itself

    Returns:
        dict: a ``dict`` with the following keys:
                     - ``record`` - the unparsed DMARC record string
                     - ``location`` - the domain where the record was found
                     - ``warnings`` - warning conditions found

    Raises:
        :exc:`checkmailauth.dmarc.DMARCRecordNotFound`
        :exc:`checkmailauth.dmarc.MultipleDMARCRecords`
        :exc:`checkmailauth.dmarc.DMARCError`
    """
    logging.debug(f"Checking for a DMARC record on {domain}")
    warnings = []
    base_domain = get_base_domain(domain)
    location = domain

    fallback = fallback_to_base_domain and domain != base_domain
    record = _query_dmarc_record(domain, lookup=lookup)
    if record is None and fallback:
        logging.debug(f"Checking for a DMARC record on the base domain {base_domain}")
        record = _query_dmarc_record(base_domain, lookup=lookup)
        location = base_domain
    if record is None:
        error_str = "A DMARC record does not exist"
        if fallback:
            error_str += " for this subdomain or its base domain."
        else:
            error_str += "."
        raise DMARCRecordNotFound(error_str)

    if check_root_record:
        try:
            root_records = lookup.query(domain)
            for root_record in root_records:
                if DMARC_VERSION_REGEX.match(root_record.strip()):
                    warnings.append(f"DMARC record at root of {domain} has no effect.")
        except DNSException as error:
            logging.debug(f"Unable to check the root of {domain} for DMARC: {error}")

    return {"record": record, "location": location, "warnings": warnings}


def _check_report_uris(tag: str, value: str, errors: list[str], warnings: list[str]):
    for uri in value.split(","):
        uri = uri.strip()
        if uri == "":
            warnings.append(f"The {tag} tag contains an empty URI.")
            continue
        if not uri.lower().startswith(MAILTO_SCHEME):
            warnings.append(f"{uri} in the {tag} tag is not a mailto: URI.")
            if not URI_SCHEME_REGEX.match(uri):
                errors.append(f"{uri} is not a valid DMARC report URI ({tag} tag).")
            continue
        address = SIZE_LIMIT_REGEX.sub("", uri[len(MAILTO_SCHEME) :])
        if not REPORT_ADDRESS_REGEX.match(address):
            errors.append(
                f"{uri} is not a valid DMARC report URI ({tag} tag): "
                f"{address} is not a valid email address."
            )


def parse_dmarc_record(record: str, domain: str = "") -> ParsedDMARCRecord:
    """
    Parses and validates a DMARC record

    Args:
        record (str): A DMARC record
        domain (str): The domain where the record is found

    Returns:
        dict: a ``dict`` with the following keys:
         - ``tags`` - a ``list`` of :class:`checkmailauth.utils.Tag` in
           record order, duplicates included
         - ``errors`` - A ``list`` of rule violations
         - ``warnings`` - A ``list`` of warnings
    """
    logging.debug(f"Parsing the DMARC record for {domain}")
    errors = []
    warnings = []
    tags = parse_tags(record, known_tags=dmarc_tags)

    # Rules apply to the first occurrence of each tag
    explicit_tags: dict[str, str] = {}
    duplicate_tags: list[str] = []
    for tag in tags:
        if not tag.is_known:
            warnings.append(f"{tag.name} is not a valid DMARC tag.")
        if tag.name in explicit_tags:
            if tag.name not in duplicate_tags:
                duplicate_tags.append(tag.name)
        else:
            explicit_tags[tag.name] = tag.value
    for tag_name in duplicate_tags:
        warnings.append(f"Duplicate {tag_name} tags are not permitted.")

    if "v" not in explicit_tags:
        errors.append('The record is missing the required version ("v") tag.')
    elif explicit_tags["v"] != "DMARC1":
        errors.append(f"The v tag must be DMARC1 - not {explicit_tags['v']}")

    allowed_policies = ",".join(dmarc_policies)
    if explicit_tags.get("p", "") == "":
        errors.append('The record is missing the required policy ("p") tag.')
    for tag_name in ("p", "sp"):
        value = explicit_tags.get(tag_name)
        if tag_name == "p" and not value:
            continue
        if value is not None and value.lower() not in dmarc_policies:
            errors.append(
                f"Tag {tag_name} must have one of the following values: "
                f"{allowed_policies} - not {value}"
            )

    for tag_name in ("adkim", "aspf"):
        value = explicit_tags.get(tag_name)
        if value is not None and value.lower() not in dmarc_alignment_modes:
            errors.append(f"Tag {tag_name} must be r or s - not {value}")

    if "pct" in explicit_tags:
        pct = explicit_tags["pct"]
        if not INTEGER_REGEX.match(pct):
            errors.append(f"The value of the pct tag must be an integer - not {pct}")
        elif int(pct) < 0 or int(pct) > 100:
            errors.append(
                f"pct value must be an integer between 0 and 100 - not {pct}"
            )

    for tag_name in ("rua", "ruf"):
        if tag_name in explicit_tags:
            _check_report_uris(tag_name, explicit_tags[tag_name], errors, warnings)

    results: ParsedDMARCRecord = {"tags": tags, "errors": errors, "warnings": warnings}

    return results


def check_dmarc(
    domain: str,
    *,
    lookup: Optional[TXTLookup] = None,
    nameservers: Optional[Sequence[str | Nameserver]] = None,
    resolver: Optional[dns.resolver.Resolver] = None,
    timeout: float = DEFAULT_DNS_TIMEOUT,
    fallback_to_base_domain: bool = False,
    check_root_record: bool = False,
) -> DMARCResult:
    """
    Returns the parsed and validated DMARC record of a domain, or why
    there is none

    Args:
        domain (str): A domain name
        lookup (TXTLookup): The TXT lookup to use
        fallback_to_base_domain (bool): Use the base domain's record when
                                        the domain has none
        check_root_record (bool): Warn about a DMARC record published at
                                  the domain itself
        nameservers (list): A list of nameservers to query
        resolver (dns.resolver.Resolver): A resolver object to use for DNS
                                          requests
        timeout (float): number of seconds to wait for a record from DNS

    Returns:
        DMARCResult: ``found`` is ``True`` only when exactly one DMARC record
        exists. Rule violations in a found record are listed in
        ``validation_errors`` and do not change ``found``.
    """
    if lookup is None:
        lookup = TXTLookup(nameservers=nameservers, resolver=resolver, timeout=timeout)
    start = perf_counter()
    found = False
    raw_record = ""
    location = None
    tags = []
    validation_errors = []
    validation_warnings = []
    error = None
    try:
        dmarc_query = query_dmarc_record(
            domain,
            lookup=lookup,
            fallback_to_base_domain=fallback_to_base_domain,
            check_root_record=check_root_record,
        )
        raw_record = dmarc_query["record"]
        location = dmarc_query["location"]
        parsed_dmarc_record = parse_dmarc_record(raw_record, location)
        tags = parsed_dmarc_record["tags"]
        validation_errors = parsed_dmarc_record["errors"]
        validation_warnings = dmarc_query["warnings"] + parsed_dmarc_record["warnings"]
        found = True
    except DMARCRecordNotFound as not_found:
        logging.debug(f"{domain}: {not_found}")
    except DMARCError as dmarc_error:
        error = str(dmarc_error)
        if dmarc_error.data:
            raw_record = dmarc_error.data.get("record", "")
            location = dmarc_error.data.get("location")

    return DMARCResult(
        domain=domain,
        found=found,
        raw_record=raw_record,
        location=location,
        tags=tuple(tags),
        validation_errors=tuple(validation_errors),
        validation_warnings=tuple(validation_warnings),
        error=error,
        elapsed_ms=round((perf_counter() - start) * 1000),
    )
