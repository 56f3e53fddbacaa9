# -*- coding: utf-8 -*-
"""Constant values"""

from __future__ import annotations
import os

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

__version__ = "1.0.0"

SYNTAX_ERROR_MARKER = "➞"
DEFAULT_DNS_TIMEOUT = 2.0
CACHE_MAX_LEN = 200000
CACHE_MAX_AGE_SECONDS = 1800

env = os.environ

if "DNS_TIMEOUT" in env:
    DEFAULT_DNS_TIMEOUT = float(env["DNS_TIMEOUT"])
if "CACHE_MAX_LEN" in env:
    CACHE_MAX_LEN = int(env["CACHE_MAX_LEN"])
if "CACHE_MAX_AGE_SECONDS" in env:
    CACHE_MAX_AGE_SECONDS = int(env["CACHE_MAX_AGE_SECONDS"])

DNS_CACHE_MAX_LEN = CACHE_MAX_LEN
if "DNS_CACHE_MAX_LEN" in env:
    DNS_CACHE_MAX_LEN = int(env["DNS_CACHE_MAX_LEN"])
DNS_CACHE_MAX_AGE_SECONDS = CACHE_MAX_AGE_SECONDS
if "DNS_CACHE_MAX_AGE_SECONDS" in env:
    DNS_CACHE_MAX_AGE_SECONDS = int(env["DNS_CACHE_MAX_AGE_SECONDS"])

# Selectors commonly published by mail providers and self-hosted setups
DKIM_SELECTORS = (
    "2013-03",
    "20161025",
    "alfa",
    "beta",
    "cm",
    "default",
    "delta",
    "dkim",
    "google",
    "k1",
    "k2",
    "k3",
    "k4",
    "k5",
    "m1",
    "m2",
    "m3",
    "m4",
    "m5",
    "mail",
    "mandrill",
    "my1",
    "my2",
    "my3",
    "my4",
    "my5",
    "pf2014",
    "pm",
    "proddkim1024",
    "rit1608",
    "s1",
    "s1024",
    "s2",
    "s2048",
    "s5",
    "s512",
    "s7",
    "s768",
    "selector1",
    "selector1-ebsmd-com0i",
    "selector1-wwecorp-com",
    "selector2",
    "smtp",
    "smtpapi",
    "test",
    "zendesk",
    "zendesk1",
    "ml",
    "consulenze",
)
