"""
cffi interface layer.

This package declares the libvirt C records and entry points we marshal
to and from, plus the numeric constants from libvirt's headers.
"""

from .bindings import cstring, ffi, libc, load_libvirt

__all__ = ["ffi", "libc", "load_libvirt", "cstring"]
