#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
NetworkOS Agent Core

Orchestration loop and evidence-fusion engine behind the NetworkOS
sales-intelligence agents.
"""

__version__ = "0.3.0"
