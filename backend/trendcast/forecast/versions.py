# Bump a version whenever its engine's output changes; every data hash and
# forecast cache key derived afterwards changes with it.
PREDICTION_ENGINE_VERSION = "2.1.0"
INSIGHT_VERSION = "1.3.0"
