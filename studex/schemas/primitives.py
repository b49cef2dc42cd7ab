from __future__ import annotations

from typing import Annotated

from pydantic import Field, StringConstraints

# Minor currency units; JSON integers only (no "25000", no 25000.5).
# Balances are stored as BIGINT, so nothing above 2**63 - 1 is accepted.
MinorUnits = Annotated[
    int,
    Field(strict=True, gt=0, le=2**63 - 1, description="Amount in minor currency units"),
]
UserId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=128)]
