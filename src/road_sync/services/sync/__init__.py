"""OSM road network sync pipeline."""
