from .base import FeedPayload, VendorHandler, VendorSpec
from .ftp import FTPHandler
from .registry import VendorHandlerRegistry
from .rest import RESTHandler
from .soap import SOAPHandler

__all__ = [
    'FeedPayload',
    'VendorHandler',
    'VendorSpec',
    'FTPHandler',
    'RESTHandler',
    'SOAPHandler',
    'VendorHandlerRegistry',
]
