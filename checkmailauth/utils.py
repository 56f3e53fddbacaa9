# -*- coding: utf-8 -*-
"""DNS utility functions"""

from __future__ import annotations

import ipaddress
import logging
import re
import string
import unicodedata
from dataclasses import dataclass
from typing import Optional, Union
from collections.abc import Collection, Sequence

import dns.exception
import dns.resolver
import dns.reversename
from dns.nameserver import Nameserver
import publicsuffixlist
from expiringdict import ExpiringDict

from checkmailauth._constants import (
    DEFAULT_DNS_TIMEOUT,
    DNS_CACHE_MAX_AGE_SECONDS,
    DNS_CACHE_MAX_LEN,
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

SCHEME_PREFIXES = (
    "http://",
    "https://",
    "ftp://",
    "sftp://",
    "scp://",
    "ssh://",
    "tls://",
    "sftp2://",
    "tftp://",
    "ftps://",
)
ZERO_WIDTH_RE = re.compile(r"[\u200B-\u200D\uFEFF]")  # includes ZWSP, ZWNJ, ZWJ, BOM
_EDGE_CHARACTERS = string.whitespace + "."
PSL = publicsuffixlist.PublicSuffixList()


class DNSException(Exception):
    """Raised when a general DNS error occurs"""

    is_name_error = False

    def __init__(self, error: Union[Exception, str]):
        if isinstance(error, dns.exception.Timeout) and "timeout" in error.kwargs:
            error.kwargs["timeout"] = round(error.kwargs["timeout"], 1)
        Exception.__init__(self, error)


class DNSExceptionNXDOMAIN(DNSException):
    """Raised when a NXDOMAIN DNS error (RCODE:3) occurs"""

    is_name_error = True


@dataclass(frozen=True)
class Tag:
    """A ``name=value`` pair from a DKIM or DMARC record"""

    name: str
    value: str
    is_known: bool = True


def parse_tags(record: str, known_tags: Optional[Collection[str]] = None) -> list[Tag]:
    """
    Splits a tag-list record (DKIM, DMARC) into tags

    Segments are separated by ``;`` and split on the first ``=``. Empty
    segments are skipped, duplicates are kept, and the order of the record
    is preserved. Tag names are lowercased; values are left as they are.

    Args:
        record (str): The record text
        known_tags: Tag names to accept as known; when ``None`` every
                    tag is known

    Returns:
        list: A list of :class:`Tag` objects
    """
    tags = []
    for segment in record.split(";"):
        segment = segment.strip()
        if segment == "":
            continue
        name, _, value = segment.partition("=")
        name = name.strip().lower()
        is_known = known_tags is None or name in known_tags
        tags.append(Tag(name=name, value=value.strip(), is_known=is_known))
    return tags


def _clean_domain(domain: str) -> str:
    # 1. Normalize Unicode (NFC form for consistency)
    domain = unicodedata.normalize("NFC", domain)
    # 2. Remove zero-width and similar hidden chars
    domain = ZERO_WIDTH_RE.sub("", domain)
    # 3. Lowercase for case-insensitivity (domains are case-insensitive)
    return domain.lower()


def _is_ip_address(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def get_base_domain(domain: str) -> str:
    """
    Gets the base domain name for the given domain

    .. note::
        Results are based on a list of public domain suffixes at
        https://publicsuffix.org/list/public_suffix_list.dat.

    Args:
        domain (str): A domain or subdomain

    Returns:
        str: The base domain of the given domain

    """
    domain = _clean_domain(domain).strip(_EDGE_CHARACTERS)
    return PSL.privatesuffix(domain) or domain


def normalize_domain(domain: str, *, lookup: Optional[TXTLookup] = None) -> str:
    """
    Turns user input (a domain, URL, or IP address) into a queryable domain

    A leading scheme such as ``https://`` is removed (only the first one),
    along with everything from the first ``/`` onward. An IP address is
    replaced by its reverse DNS hostname.

    Args:
        domain (str): A domain, URL, or IP address
        lookup (TXTLookup): The lookup to use for reverse DNS

    Returns:
        str: A lowercase domain, or an empty string if the input cannot be
        turned into a domain
    """
    domain = _clean_domain(domain).strip()
    for prefix in SCHEME_PREFIXES:
        if domain.startswith(prefix):
            domain = domain[len(prefix) :]
            break
    domain = domain.split("/", 1)[0].strip(_EDGE_CHARACTERS)
    if _is_ip_address(domain):
        domain = _domain_from_ip(domain, lookup)
    if "." not in domain:
        return ""
    return domain


def _domain_from_ip(ip_address: str, lookup: Optional[TXTLookup]) -> str:
    try:
        if lookup is None:
            lookup = TXTLookup()
        hostname = lookup.reverse_lookup(ip_address)
    except (DNSException, dns.exception.DNSException, OSError) as error:
        logging.debug(f"Reverse DNS lookup failed for {ip_address}: {error}")
        return ""
    hostname = _clean_domain(hostname).strip(_EDGE_CHARACTERS)
    if "/" in hostname or _is_ip_address(hostname):
        return ""
    return hostname


class TXTLookup(object):
    """
    Queries TXT records through one shared resolver

    A single instance is meant to serve every query of a run, including
    concurrent DKIM selector probes.
    """

    def __init__(
        self,
        *,
        nameservers: Optional[Sequence[str | Nameserver]] = None,
        resolver: Optional[dns.resolver.Resolver] = None,
        timeout: float = DEFAULT_DNS_TIMEOUT,
        cache: Optional[ExpiringDict] = None,
    ):
        """
        Args:
            nameservers (list): A list of nameservers to query
            resolver (dns.resolver.Resolver): A resolver object to use for DNS
                                              requests
            timeout (float): number of seconds to wait for an answer from DNS
            cache (ExpiringDict): Cache storage
        """
        timeout = float(timeout)
        if resolver is None:
            resolver = dns.resolver.Resolver()
            if nameservers is not None:
                resolver.nameservers = nameservers
            resolver.timeout = timeout
            resolver.lifetime = timeout
        if cache is None:
            cache = ExpiringDict(
                max_len=DNS_CACHE_MAX_LEN, max_age_seconds=DNS_CACHE_MAX_AGE_SECONDS
            )
        self.resolver = resolver
        self.timeout = timeout
        self.cache = cache

    def query(self, name: str) -> list[str]:
        """
        Queries DNS for TXT records

        Args:
            name (str): The name to query

        Returns:
            list: The text of each TXT record, with the segments of each
            record joined in order. A name without TXT records gives an
            empty list.

        Raises:
            :exc:`checkmailauth.utils.DNSExceptionNXDOMAIN`
            :exc:`checkmailauth.utils.DNSException`
        """
        cache_key = name.lower()
        records = self.cache.get(cache_key)
        if isinstance(records, list):
            return list(records)
        try:
            answers = self.resolver.resolve(name, "TXT", lifetime=self.timeout)
        except dns.resolver.NXDOMAIN:
            raise DNSExceptionNXDOMAIN(f"The domain {name} does not exist.")
        except dns.resolver.NoAnswer:
            records = []
        except Exception as error:
            raise DNSException(error)
        else:
            records = []
            for answer in answers:
                # Join each sequence of byte chunks into a single bytes object
                record = b"".join(answer.strings)
                try:
                    records.append(record.decode())
                except UnicodeDecodeError:
                    records.append("Undecodable characters")
        self.cache[cache_key] = records

        return list(records)

    def reverse_lookup(self, ip_address: str) -> str:
        """
        Queries for an IP addresses reverse DNS hostname

        Args:
            ip_address (str): An IPv4 or IPv6 address

        Returns:
            str: The first reverse DNS hostname

        Raises:
            :exc:`checkmailauth.utils.DNSException`
        """
        logging.debug(f"Getting PTR records for {ip_address}")
        try:
            name = dns.reversename.from_address(ip_address)
            answers = self.resolver.resolve(name, "PTR", lifetime=self.timeout)
        except dns.resolver.NXDOMAIN:
            raise DNSExceptionNXDOMAIN(f"{ip_address} has no reverse DNS entry.")
        except Exception as error:
            raise DNSException(error)
        hostnames = [answer.to_text().rstrip(".") for answer in answers]
        if len(hostnames) == 0:
            raise DNSException(f"{ip_address} has no reverse DNS entry.")

        return hostnames[0]
