"""
enrichment package

Source IP enrichment (geolocation).
"""
