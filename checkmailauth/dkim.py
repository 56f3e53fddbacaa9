# -*- coding: utf-8 -*-
"""DomainKeys Identified Mail (DKIM) selector discovery"""

from __future__ import annotations

import base64
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from time import perf_counter
from typing import Optional
from collections.abc import Sequence

import dns.resolver
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.serialization import load_der_public_key
from dns.nameserver import Nameserver

from checkmailauth._constants import DEFAULT_DNS_TIMEOUT, DKIM_SELECTORS
from checkmailauth.utils import DNSException, Tag, TXTLookup, parse_tags

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

DKIM_VERSION_REGEX = re.compile(r"^v=DKIM1", re.IGNORECASE)
WHITESPACE_REGEX = re.compile(r"\s+")
ED25519_KEY_SIZE = 256


@dataclass(frozen=True)
class DKIMSelectorResult:
    """The outcome of probing one selector"""

    selector: str
    found: bool = False
    raw_record: str = ""
    tags: tuple[Tag, ...] = ()
    error: Optional[str] = None
    elapsed_ms: int = 0

    def get_tag(self, name: str) -> Optional[Tag]:
        """Returns the first tag with the given name"""
        name = name.lower()
        for tag in self.tags:
            if tag.name == name:
                return tag
        return None

    @property
    def key_type(self) -> str:
        tag = self.get_tag("k")
        if tag is None or tag.value == "":
            return "rsa"
        return tag.value.lower()

    @property
    def public_key(self) -> Optional[str]:
        tag = self.get_tag("p")
        if tag is None:
            return None
        return WHITESPACE_REGEX.sub("", tag.value)

    @property
    def revoked(self) -> bool:
        """An empty ``p=`` tag means the key has been revoked"""
        return self.public_key == ""

    @property
    def testing(self) -> bool:
        tag = self.get_tag("t")
        if tag is None:
            return False
        return "y" in map(lambda f: f.strip().lower(), tag.value.split(":"))

    @property
    def key_size(self) -> Optional[int]:
        """The size of the public key in bits, if it can be determined"""
        public_key = self.public_key
        if not public_key:
            return None
        if self.key_type == "ed25519":
            return ED25519_KEY_SIZE
        try:
            key = load_der_public_key(base64.b64decode(public_key))
        except (ValueError, UnsupportedAlgorithm) as error:
            logging.debug(f"Unable to load the DKIM key of {self.selector}: {error}")
            return None
        return getattr(key, "key_size", None)


@dataclass(frozen=True)
class DKIMProbeReport:
    """The selectors of a domain that were found or failed to resolve

    Selectors that simply do not exist are left out; ``selectors_probed``
    is the number of selectors that were tried.
    """

    domain: str
    results: tuple[DKIMSelectorResult, ...] = ()
    selectors_probed: int = 0
    elapsed_ms: int = 0

    @property
    def found(self) -> bool:
        return any(result.found for result in self.results)

    @property
    def selectors(self) -> list[str]:
        return [result.selector for result in self.results if result.found]


def parse_dkim_record(record: str) -> list[Tag]:
    """
    Splits a DKIM record into tags

    No values are validated; an empty ``p`` tag is kept as a revoked key.

    Args:
        record (str): A DKIM record

    Returns:
        list: A list of :class:`checkmailauth.utils.Tag` in record order
    """
    return parse_tags(record)


def check_dkim_selector(
    domain: str, selector: str, *, lookup: TXTLookup
) -> DKIMSelectorResult:
    """
    Looks for a DKIM record at ``<selector>._domainkey.<domain>``

    Args:
        domain (str): A domain name
        selector (str): The DKIM selector to try
        lookup (TXTLookup): The TXT lookup to use

    Returns:
        DKIMSelectorResult: A name that does not exist is a plain miss
        (``found`` is ``False``, ``error`` is ``None``); any other DNS
        failure sets ``error``.
    """
    name = f"{selector}._domainkey.{domain}"
    start = perf_counter()
    found = False
    raw_record = ""
    tags = []
    error = None
    try:
        records = lookup.query(name)
        for record in records:
            if DKIM_VERSION_REGEX.match(record):
                raw_record = record
                tags = parse_dkim_record(record)
                found = True
                break
    except DNSException as dns_error:
        if not dns_error.is_name_error:
            error = f"DNS error for selector {selector}: {dns_error}"
            logging.debug(error)
    except Exception as e:
        # One failed probe must not take down the rest of the fan-out
        error = f"Error for selector {selector}: {e}"
        logging.debug(error)

    return DKIMSelectorResult(
        selector=selector,
        found=found,
        raw_record=raw_record,
        tags=tuple(tags),
        error=error,
        elapsed_ms=round((perf_counter() - start) * 1000),
    )


def find_dkim_selectors(
    domain: str,
    *,
    selectors: Optional[Sequence[str]] = None,
    lookup: Optional[TXTLookup] = None,
    nameservers: Optional[Sequence[str | Nameserver]] = None,
    resolver: Optional[dns.resolver.Resolver] = None,
    timeout: float = DEFAULT_DNS_TIMEOUT,
) -> DKIMProbeReport:
    """
    Probes a list of common DKIM selectors concurrently

    Every selector is queried at once and all queries are waited for, so
    every published selector is reported, not just the first.

    Args:
        domain (str): A domain name
        selectors (list): The selectors to probe (defaults to
                          :data:`checkmailauth._constants.DKIM_SELECTORS`)
        lookup (TXTLookup): The TXT lookup to share between probes
        nameservers (list): A list of nameservers to query
        resolver (dns.resolver.Resolver): A resolver object to use for DNS
                                          requests
        timeout (float): number of seconds to wait for an answer from DNS

    Returns:
        DKIMProbeReport: The found and failed selectors, in probe order
    """
    if selectors is None:
        selectors = DKIM_SELECTORS
    selectors = list(selectors)
    if lookup is None:
        lookup = TXTLookup(nameservers=nameservers, resolver=resolver, timeout=timeout)
    start = perf_counter()
    results: list[DKIMSelectorResult] = []
    if domain != "" and len(selectors) > 0:
        logging.debug(f"Probing {len(selectors)} DKIM selectors on {domain}")
        with ThreadPoolExecutor(max_workers=len(selectors)) as executor:
            results = list(
                executor.map(
                    lambda selector: check_dkim_selector(
                        domain, selector, lookup=lookup
                    ),
                    selectors,
                )
            )

    return DKIMProbeReport(
        domain=domain,
        results=tuple(r for r in results if r.found or r.error is not None),
        selectors_probed=len(results),
        elapsed_ms=round((perf_counter() - start) * 1000),
    )
