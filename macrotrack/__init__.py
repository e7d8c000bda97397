# -*- coding: utf-8 -*-
"""Meal logging backend with AI macro estimation."""
