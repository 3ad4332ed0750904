"""
Subsystem implementations.

- libvirt: the real thing, through cffi
"""
