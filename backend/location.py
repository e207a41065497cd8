"""SafeRoute Backend — Cape Town location validation and enrichment"""

import logging
import math
from typing import Optional

from config import CAPE_TOWN_BOUNDS
from crime_generator import haversine_km, is_within_cape_town
from errors import InvalidInputError
from models import Location, LocationValidation

logger = logging.getLogger("saferoute.location")

# Approximate neighbourhood centres: name → (lat, lng, land use)
NEIGHBORHOODS: dict[str, tuple[float, float, str]] = {
    "City Bowl": (-33.9249, 18.4241, "commercial"),
    "Sea Point": (-33.9207, 18.3889, "residential"),
    "Green Point": (-33.9074, 18.4080, "residential"),
    "Camps Bay": (-33.9508, 18.3773, "recreational"),
    "Clifton": (-33.9363, 18.3715, "residential"),
    "Waterfront": (-33.9020, 18.4181, "commercial"),
    "Observatory": (-33.9330, 18.4731, "residential"),
    "Woodstock": (-33.9245, 18.4565, "industrial"),
    "Salt River": (-33.9343, 18.4694, "industrial"),
    "Rondebosch": (-33.9667, 18.4833, "residential"),
    "Claremont": (-33.9830, 18.4647, "commercial"),
    "Newlands": (-33.9716, 18.4851, "residential"),
    "Constantia": (-34.0336, 18.4219, "residential"),
    "Hout Bay": (-34.0486, 18.3503, "recreational"),
    "Muizenberg": (-34.1031, 18.4668, "recreational"),
    "Kalk Bay": (-34.1284, 18.4470, "recreational"),
    "Fish Hoek": (-34.1365, 18.4329, "residential"),
    "Simon's Town": (-34.1927, 18.4298, "transport_hub"),
    "Bellville": (-33.8963, 18.6292, "commercial"),
    "Parow": (-33.8907, 18.5894, "residential"),
    "Goodwood": (-33.8837, 18.5505, "residential"),
    "Elsies River": (-33.8434, 18.5358, "residential"),
    "Kuils River": (-33.9667, 18.6833, "residential"),
    "Mitchells Plain": (-34.0367, 18.6217, "residential"),
    "Khayelitsha": (-34.0529, 18.6919, "residential"),
    "Gugulethu": (-33.9806, 18.5844, "residential"),
    "Langa": (-33.9408, 18.5115, "residential"),
    "Athlone": (-33.9667, 18.5167, "residential"),
    "Manenberg": (-33.9667, 18.5500, "residential"),
    "Retreat": (-34.0567, 18.4854, "residential"),
    "Steenberg": (-34.0708, 18.4708, "residential"),
}

LANDMARKS: dict[str, tuple[float, float, str]] = {
    "Table Mountain": (-33.9628, 18.4098, "landmark"),
    "Cape Point": (-34.3569, 18.4965, "landmark"),
    "Robben Island": (-33.8067, 18.3669, "landmark"),
    "V&A Waterfront": (-33.9030, 18.4197, "commercial"),
    "Cape Town Stadium": (-33.9056, 18.4106, "landmark"),
    "Cape Town International Airport": (-33.9717, 18.6021, "transport_hub"),
    "Cape Town Railway Station": (-33.9175, 18.4285, "transport_hub"),
    "Golden Acre": (-33.9197, 18.4219, "transport_hub"),
    "University of Cape Town": (-33.9577, 18.4609, "landmark"),
    "Kirstenbosch": (-33.9883, 18.4319, "recreational"),
}

LANDMARK_FALLBACK_KM = 5.0
NEIGHBORHOOD_MAX_KM = 15.0


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class LocationValidator:
    """Coordinate checks against the Cape Town metro and nearest-place lookup."""

    def validate_coordinates(self, latitude, longitude) -> LocationValidation:
        if not _is_number(latitude) or not _is_number(longitude):
            return LocationValidation(isValid=False, withinBounds=False,
                                      errors=["Coordinates must be valid numbers"])
        if math.isnan(latitude) or math.isnan(longitude):
            return LocationValidation(isValid=False, withinBounds=False,
                                      errors=["Coordinates cannot be NaN values"])
        if not -90 <= latitude <= 90:
            return LocationValidation(isValid=False, withinBounds=False,
                                      errors=["Latitude must be between -90 and 90 degrees"])
        if not -180 <= longitude <= 180:
            return LocationValidation(isValid=False, withinBounds=False,
                                      errors=["Longitude must be between -180 and 180 degrees"])

        if not is_within_cape_town(latitude, longitude):
            return LocationValidation(
                isValid=False,
                withinBounds=False,
                errors=["Location is outside Cape Town metropolitan area"],
                suggestions=self._bounds_suggestions(latitude, longitude),
            )

        location = Location(latitude=latitude, longitude=longitude)
        return LocationValidation(
            isValid=True,
            withinBounds=True,
            neighborhood=self.find_nearest_neighborhood(latitude, longitude),
            enrichedLocation=self.enrich(location),
        )

    @staticmethod
    def _bounds_suggestions(latitude: float, longitude: float) -> list[str]:
        suggestions = []
        if latitude < CAPE_TOWN_BOUNDS["south"]:
            suggestions.append("Location is south of Cape Town. Consider False Bay area.")
        elif latitude > CAPE_TOWN_BOUNDS["north"]:
            suggestions.append("Location is north of Cape Town. Consider Bellville or surrounding areas.")
        if longitude < CAPE_TOWN_BOUNDS["west"]:
            suggestions.append("Location is west of Cape Town. Consider Sea Point or Atlantic coast.")
        elif longitude > CAPE_TOWN_BOUNDS["east"]:
            suggestions.append("Location is east of Cape Town. Consider Stellenbosch direction.")
        return suggestions

    def find_nearest_neighborhood(self, latitude: float, longitude: float) -> Optional[str]:
        """Closest neighbourhood; landmarks ("Near X") only when no suburb is within 5 km."""
        name, distance = min(
            ((n, haversine_km(latitude, longitude, lat, lng)) for n, (lat, lng, _) in NEIGHBORHOODS.items()),
            key=lambda pair: pair[1],
        )
        if distance > LANDMARK_FALLBACK_KM:
            for landmark, (lat, lng, _) in LANDMARKS.items():
                d = haversine_km(latitude, longitude, lat, lng)
                if d < distance:
                    name, distance = f"Near {landmark}", d
        return name if distance < NEIGHBORHOOD_MAX_KM else None

    @staticmethod
    def location_type_for(neighborhood: Optional[str]) -> str:
        if not neighborhood:
            return "residential"
        clean = neighborhood.removeprefix("Near ")
        entry = NEIGHBORHOODS.get(clean) or LANDMARKS.get(clean)
        return entry[2] if entry else "residential"

    def enrich(self, location: Location) -> Location:
        """Fill id, neighbourhood, address and land use; caller values win."""
        lat, lng = location.latitude, location.longitude
        neighborhood = location.neighborhood or self.find_nearest_neighborhood(lat, lng)

        if neighborhood:
            address = f"{neighborhood}, Cape Town, Western Cape, South Africa"
        else:
            address = f"{lat:.4f}, {lng:.4f}, Cape Town, Western Cape, South Africa"

        lat_str = f"{lat:.6f}".replace(".", "").replace("-", "S")
        lng_str = f"{lng:.6f}".replace(".", "").replace("-", "W")

        return location.model_copy(update={
            "id": location.id or f"loc_{lat_str}_{lng_str}",
            "neighborhood": neighborhood,
            "address": location.address or address,
            "type": location.type or self.location_type_for(neighborhood),
        })

    def require_valid(self, location: Location) -> Location:
        """Return the enriched location or raise InvalidInputError."""
        result = self.validate_coordinates(location.latitude, location.longitude)
        if not result.isValid:
            logger.info(f"Rejected location ({location.latitude}, {location.longitude}): {result.errors}")
            raise InvalidInputError(
                "; ".join(result.errors),
                details={
                    "latitude": location.latitude,
                    "longitude": location.longitude,
                    "errors": result.errors,
                    "suggestions": result.suggestions,
                },
            )
        return self.enrich(location)

    # ── Named places ──

    def get_location_by_name(self, name: str) -> Optional[Location]:
        entry = NEIGHBORHOODS.get(name) or LANDMARKS.get(name)
        if entry is None:
            return None
        lat, lng, kind = entry
        return self.enrich(Location(
            latitude=lat,
            longitude=lng,
            address=f"{name}, Cape Town, Western Cape, South Africa",
            neighborhood=name if name in NEIGHBORHOODS else None,
            type=kind,
        ))

    def search(self, query: str) -> list[Location]:
        q = query.strip().lower()
        names = [n for n in (*NEIGHBORHOODS, *LANDMARKS) if q in n.lower()]
        return [self.get_location_by_name(n) for n in names]
