"""
Services package for the tiered score storage engine.
"""

from .maintenance import MaintenanceService

__all__ = ['MaintenanceService']
