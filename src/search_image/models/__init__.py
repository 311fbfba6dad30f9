"""Device backends, preprocessing, feature extraction and record schemas."""
