# Project metadata, read by setup.py and re-exported by ldstudio.jsonld.

__all__ = [
    '__copyright__', '__license__', '__version__'
]

__copyright__ = 'Copyright (c) 2024 ldstudio contributors'
__license__ = 'BSD 3-Clause license'
__version__ = '0.4.0'
