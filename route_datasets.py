"""
Route datasets served behind access tokens, and the test centre catalogue.

A dataset is a JSON file named <dataset>.json in ROUTE_DATA_DIR:

    {"location": "Naas", "routes": [{"id": 1, "name": "Route 1", "link": "https://maps.google.com/..."}]}

The links are only ever used for redirects, never returned in a response body.
"""
import json
import logging
import os
import re

from flask import current_app

logger = logging.getLogger(__name__)

DATASET_NAME = re.compile(r"^[a-z0-9_]+$")
ROUTES_PER_CENTRE = 7

TEST_CENTRES = [
    "Athlone", "Ballina", "Birr", "Birr (County Arms Hotel)", "Buncrana",
    "Carlow (Talbot Hotel)", "Carrick-on-Shannon", "Castlebar", "Cavan",
    "Charlestown (Dublin)", "Clifden", "Clonmel", "Cork (Ballincollig)",
    "Cork (St. Finbarr's GAA Club, Togher)", "Cork (Wilton)", "Donegal",
    "Drogheda", "Dundalk", "Dungarvan", "Dún Laoghaire / Deansgrange",
    "Ennis", "Finglas", "Galway (Carnmore)", "Galway (Westside)", "Gorey",
    "Killarney", "Kilkenny (Government Buildings)", "Kilkenny (O'Loughlin Gaels)",
    "Killester", "Kilrush", "Letterkenny", "Limerick (Castlemungret)",
    "Limerick (Woodview)", "Longford", "Loughrea", "Loughrea (Lough Rea Hotel & Spa)",
    "Mallow (Cork Racecourse, Mallow)", "Monaghan", "Mulhuddart",
    "Mulhuddart (Carlton Hotel)", "Mullingar", "Naas", "Navan", "Nenagh",
    "Newcastle West", "Newcastle West (Longcourt House Hotel)", "Portlaoise",
    "Raheny", "Roscommon", "Shannon", "Skibbereen", "Sligo", "Tallaght",
    "Thurles", "Tipperary", "Tralee", "Tuam", "Tullamore", "Waterford",
    "Wexford", "Wicklow",
]


class DatasetNotFound(LookupError):
    pass


class DatasetLoadError(Exception):
    pass


class RouteDatasets:

    @staticmethod
    def load(dataset):
        """
        Load a dataset by name. Raises DatasetNotFound for unknown names and DatasetLoadError when the
        file exists but cannot be read.
        """
        if not DATASET_NAME.match(dataset or ""):
            raise DatasetNotFound(dataset)

        path = os.path.join(current_app.config["ROUTE_DATA_DIR"], f"{dataset}.json")
        if not os.path.isfile(path):
            raise DatasetNotFound(dataset)

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Error reading route dataset %s: %s", path, e)
            raise DatasetLoadError(dataset) from e

        if not isinstance(data, dict) or not isinstance(data.get("routes"), list):
            logger.error("Route dataset %s has no routes list", path)
            raise DatasetLoadError(dataset)
        return data

    @staticmethod
    def find_route(data, route_id):
        try:
            route_id = int(route_id)
        except (TypeError, ValueError):
            return None

        for route in data["routes"]:
            if route.get("id") == route_id and route.get("link"):
                return route
        return None

    @staticmethod
    def public_routes(data):
        """Routes without their external links."""
        return [{"id": route.get("id"), "name": route.get("name")} for route in data["routes"]]

    @staticmethod
    def centres():
        return [{"name": name, "routeCount": ROUTES_PER_CENTRE} for name in TEST_CENTRES]
