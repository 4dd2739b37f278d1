"""
Core math modules для value tree

Числовые примитивы: границы int64, fixed-point scale для DOUBLE,
sentinel-carry кодирование последовательностей целых.
"""

# Numerical Safeguards
from src.core.math.numerical_safeguards import (
    # Constants
    INF_LITERAL,
    INT64_MAX,
    INT64_MIN,
    MAX_SCALE_DIGITS,
    SCALE_NONE,
    UINT16_MAX,
    UINT32_MAX,
    # NaN/Inf, int64
    clamp_int64,
    float_to_int64,
    is_int64,
    is_valid_float,
    # Fixed-point scale
    decimal_scale,
    resolve_scale,
    scale_digits,
    scale_to_int,
    validate_scale,
    # Rendering
    render_double,
)

# Escaped integer sequences
from src.core.math.escaped_ints import (
    WORD16,
    WORD32,
    EscapedIntCodec,
    EscapedIntDecodeError,
    codec_for_width,
    decode_vector,
    decode_vector4,
    encode_vector,
    encode_vector4,
)

__all__ = [
    # Numerical Safeguards — Constants
    "INF_LITERAL",
    "INT64_MAX",
    "INT64_MIN",
    "MAX_SCALE_DIGITS",
    "SCALE_NONE",
    "UINT16_MAX",
    "UINT32_MAX",
    # Numerical Safeguards — NaN/Inf, int64
    "clamp_int64",
    "float_to_int64",
    "is_int64",
    "is_valid_float",
    # Numerical Safeguards — Fixed-point scale
    "decimal_scale",
    "resolve_scale",
    "scale_digits",
    "scale_to_int",
    "validate_scale",
    # Numerical Safeguards — Rendering
    "render_double",
    # Escaped ints — Types
    "EscapedIntCodec",
    "EscapedIntDecodeError",
    # Escaped ints — Instances
    "WORD16",
    "WORD32",
    # Escaped ints — Functions
    "codec_for_width",
    "decode_vector",
    "decode_vector4",
    "encode_vector",
    "encode_vector4",
]
