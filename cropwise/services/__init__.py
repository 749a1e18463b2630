"""Clients for the remote services the workflow coordinates."""
from .geolocation import geolocator_from_location, static_geolocator
from .history import HistoryStore
from .imagery import fetch_crop_image
from .prediction import PredictionClient
from .weather import fetch_current_weather

__all__ = [
    'HistoryStore',
    'PredictionClient',
    'fetch_crop_image',
    'fetch_current_weather',
    'geolocator_from_location',
    'static_geolocator',
]
