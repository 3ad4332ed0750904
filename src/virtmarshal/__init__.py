"""
virtmarshal - marshaling between Python and the libvirt C API.

Typed parameters, two-phase array queries and domain event dispatch,
driven through cffi.
"""

__version__ = "0.1.0"
