"""
Core value tree, numeric primitives, and decoding contracts.

This module contains the building blocks that are independent of any
particular wire format: the Value tree and its cursors, fixed-point and
escaped-integer helpers, codec limits and packet header contracts.
"""
