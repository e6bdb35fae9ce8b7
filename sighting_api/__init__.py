"""Sighting report API: citizen-science cetacean sightings with moderated posts."""

__version__ = "1.0.0"
