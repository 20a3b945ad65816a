from pulse.places.google_places import (
    DENVER_CENTER,
    GooglePlacesClient,
    PlaceSearchResult,
    calculate_combined_score,
)

__all__ = ["DENVER_CENTER", "GooglePlacesClient", "PlaceSearchResult", "calculate_combined_score"]
