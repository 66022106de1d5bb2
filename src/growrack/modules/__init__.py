"""
Modules package for growrack.

Modules are plug-ins that add behavior to racks.
"""

from growrack.modules.base import RackModule

__all__ = ["RackModule"]
