# -*- coding: utf-8 -*-

"""Retrieves and parses the SPF, DMARC, and DKIM records of a domain"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from time import sleep
from typing import Optional, Union
from collections.abc import Sequence

import dns.resolver
from dns.nameserver import Nameserver

import checkmailauth._constants
from checkmailauth._constants import DEFAULT_DNS_TIMEOUT
from checkmailauth.dkim import DKIMProbeReport, find_dkim_selectors
from checkmailauth.dmarc import DMARCResult, check_dmarc
from checkmailauth.spf import SPFResult, check_spf
from checkmailauth.utils import (
    DNSException,
    DNSExceptionNXDOMAIN,
    TXTLookup,
    get_base_domain,
    normalize_domain,
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


__version__ = checkmailauth._constants.__version__

__all__ = [
    "DNSException",
    "DNSExceptionNXDOMAIN",
    "DomainResults",
    "TXTLookup",
    "check_dmarc",
    "check_domain",
    "check_domains",
    "check_spf",
    "find_dkim_selectors",
    "normalize_domain",
]


@dataclass(frozen=True)
class DomainResults:
    domain: str
    base_domain: str
    spf: SPFResult
    dmarc: DMARCResult
    dkim: DKIMProbeReport


def _check_normalized_domain(
    domain: str,
    *,
    lookup: TXTLookup,
    selectors: Optional[Sequence[str]] = None,
) -> DomainResults:
    logging.debug(f"Checking: {domain}")
    return DomainResults(
        domain=domain,
        base_domain=get_base_domain(domain),
        spf=check_spf(domain, lookup=lookup),
        dmarc=check_dmarc(domain, lookup=lookup),
        dkim=find_dkim_selectors(domain, selectors=selectors, lookup=lookup),
    )


def check_domain(
    domain: str,
    *,
    selectors: Optional[Sequence[str]] = None,
    lookup: Optional[TXTLookup] = None,
    nameservers: Optional[Sequence[str | Nameserver]] = None,
    resolver: Optional[dns.resolver.Resolver] = None,
    timeout: float = DEFAULT_DNS_TIMEOUT,
) -> Optional[DomainResults]:
    """
    Normalizes the given domain, URL, or IP address, then checks its SPF,
    DMARC, and DKIM records

    Args:
        domain (str): A domain, URL, or IP address
        selectors (list): The DKIM selectors to probe
        lookup (TXTLookup): The TXT lookup to share between the checks
        nameservers (list): A list of nameservers to query
        resolver (dns.resolver.Resolver): A resolver object to use for DNS
                                          requests
        timeout (float): number of seconds to wait for an answer from DNS

    Returns:
        DomainResults: The results, or ``None`` if the input is not a domain
    """
    if lookup is None:
        lookup = TXTLookup(nameservers=nameservers, resolver=resolver, timeout=timeout)
    normalized_domain = normalize_domain(domain, lookup=lookup)
    if normalized_domain == "":
        logging.warning(f"Skipping {domain}: not a valid domain")
        return None
    return _check_normalized_domain(
        normalized_domain, lookup=lookup, selectors=selectors
    )


def check_domains(
    domains: list[str],
    *,
    selectors: Optional[Sequence[str]] = None,
    nameservers: Optional[Sequence[str | Nameserver]] = None,
    resolver: Optional[dns.resolver.Resolver] = None,
    timeout: float = DEFAULT_DNS_TIMEOUT,
    wait: float = 0.0,
) -> Union[DomainResults, list[DomainResults]]:
    """
    Check the given domains for SPF, DMARC, and DKIM records, parse them, and
    return them

    Args:
        domains (list): A list of domains, URLs, or IP addresses to check
        selectors (list): The DKIM selectors to probe
        nameservers (list): A list of nameservers to query
        resolver (dns.resolver.Resolver): A resolver object to use for DNS
                                          requests
        timeout (float): number of seconds to wait for an answer from DNS
        wait (float): number of seconds to wait between processing domains

    Returns:
       A :class:`DomainResults` or ``list`` of :class:`DomainResults`, one
       per distinct valid domain, sorted by domain
    """
    lookup = TXTLookup(nameservers=nameservers, resolver=resolver, timeout=timeout)
    normalized_domains = set()
    for domain in domains:
        normalized_domain = normalize_domain(domain, lookup=lookup)
        if normalized_domain == "":
            logging.warning(f"Skipping {domain}: not a valid domain")
            continue
        normalized_domains.add(normalized_domain)

    results = []
    for domain in sorted(normalized_domains):
        results.append(
            _check_normalized_domain(domain, lookup=lookup, selectors=selectors)
        )
        if wait > 0.0:
            logging.debug(f"Sleeping for {wait} seconds")
            sleep(wait)
    if len(results) == 1:
        results = results[0]

    return results
