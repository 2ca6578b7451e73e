"""Shared field types for request schemas.

Learn: User-typed text is trimmed before its length is checked, so
"  Work  " counts as four characters, not eight. Emptiness is left to
the model layer, which reports "<field> is required" for names that
were only whitespace.
"""

from typing import Annotated

from pydantic import StringConstraints

Name = Annotated[str, StringConstraints(strip_whitespace=True, max_length=50)]
LongName = Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)]
Title = Annotated[str, StringConstraints(strip_whitespace=True, max_length=200)]
Message = Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]
Description = Annotated[str, StringConstraints(strip_whitespace=True, max_length=2000)]
