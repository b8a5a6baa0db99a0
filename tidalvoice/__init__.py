"""
TidalVoice - resilience and playback state layer for a voice-driven TIDAL integration
Main package initialization
"""

from .version import VERSION, get_app_info, get_version

__version__ = VERSION
__all__ = ['VERSION', 'get_version', 'get_app_info']
