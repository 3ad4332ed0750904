"""
Typed parameters.

This package contains:
- typed: TypedKind, TypedValue and ParameterSet
- codec: conversion to and from virTypedParameter arrays
- negotiate: reading and updating parameter groups through a subsystem
"""

from .codec import EncodedParameters, decode, encode, fits
from .negotiate import coerce, get_parameters, set_parameters
from .typed import ParameterSet, TypedKind, TypedValue

__all__ = [
    "TypedKind",
    "TypedValue",
    "ParameterSet",
    "EncodedParameters",
    "encode",
    "decode",
    "fits",
    "coerce",
    "get_parameters",
    "set_parameters",
]
