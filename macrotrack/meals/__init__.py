# -*- coding: utf-8 -*-
"""Meals domain (estimated meal entries, daily totals, usage)."""
