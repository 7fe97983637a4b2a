# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Credential primitives.

This package provides:
- Password hashing/verification (argon2)
- Signed, time-bounded session tokens (itsdangerous)
- Random one-time codes for email verification and password reset
"""
