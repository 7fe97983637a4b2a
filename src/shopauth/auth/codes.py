# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import secrets

CODE_DIGITS = 6


def generate_code(digits: int = CODE_DIGITS) -> str:
    """Random zero-padded numeric code."""
    return str(secrets.randbelow(10 ** digits)).zfill(digits)
