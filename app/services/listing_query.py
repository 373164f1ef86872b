# app/services/listing_query.py
import math
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy import asc, desc, func, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from app.models import tables

logger = logging.getLogger(__name__)

Listing = tables.Listing

# Caller vocabulary -> stored status tag
TYPE_TO_STATUS = {
    "sprzedaz": "na_sprzedaz",
    "sale": "na_sprzedaz",
    "wynajem": "do_wynajecia",
    "rental": "do_wynajecia",
}

SORT_ALIASES = {
    "price-asc": "cena-asc",
    "price-desc": "cena-desc",
    "date-asc": "data-asc",
    "date-desc": "data-desc",
    "area-asc": "powierzchnia-asc",
    "area-desc": "powierzchnia-desc",
}
SORT_KEYS = ("cena-asc", "cena-desc", "data-asc", "data-desc", "powierzchnia-asc", "powierzchnia-desc")
DEFAULT_SORT = "data-desc"

MAX_PAGE_SIZE = 100


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def normalize_sort(sort: Optional[str]) -> str:
    key = (sort or "").strip().lower()
    key = SORT_ALIASES.get(key, key)
    return key if key in SORT_KEYS else DEFAULT_SORT


@dataclass
class ListingFilters:
    search: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    listing_type: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    area_min: Optional[float] = None
    area_max: Optional[float] = None
    rooms: Optional[int] = None
    sort: Optional[str] = None
    mine: bool = False
    # Advanced search also matches description, city and region
    advanced: bool = False
    owner_id: Optional[Any] = None

    def effective_status(self) -> Optional[str]:
        mapped = TYPE_TO_STATUS.get((self.listing_type or "").strip().lower())
        return mapped or self.status

    def as_dict(self) -> Dict[str, Any]:
        return {
            "search": self.search,
            "typ": self.listing_type,
            "kategoria": self.category,
            "status": self.status,
            "wojewodztwo": self.region,
            "miasto": self.city,
            "cenaMin": self.price_min,
            "cenaMax": self.price_max,
            "powierzchniaMin": self.area_min,
            "powierzchniaMax": self.area_max,
            "pokoje": self.rooms,
            "sort": normalize_sort(self.sort),
        }


@dataclass
class Page:
    items: List[Any]
    total: int
    page: int
    limit: int
    filters: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        return total_pages(self.total, self.limit)


class ListingQuery:
    """Filter, sort, paginate and summarise listings over an injected session."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------
    # Filters
    # ------------------------------------------
    def conditions(self, filters: ListingFilters, caller: Optional[tables.User] = None,
                   include_inactive: bool = False) -> list:
        clauses = []

        if filters.mine and caller is not None:
            # Owners see their own inactive listings too
            clauses.append(Listing.user_id == caller.id)
        elif not include_inactive:
            clauses.append(Listing.is_active.is_(True))

        if filters.owner_id is not None:
            clauses.append(Listing.user_id == filters.owner_id)

        term = (filters.search or "").strip()
        if term:
            if filters.advanced:
                clauses.append(or_(
                    Listing.name.icontains(term, autoescape=True),
                    Listing.description.icontains(term, autoescape=True),
                    Listing.city.icontains(term, autoescape=True),
                    Listing.region.icontains(term, autoescape=True),
                ))
            else:
                clauses.append(Listing.name.icontains(term, autoescape=True))

        if filters.category:
            clauses.append(Listing.category == filters.category)

        status_tag = filters.effective_status()
        if status_tag:
            clauses.append(Listing.status == status_tag)

        if filters.region:
            clauses.append(Listing.region == filters.region)
        if filters.city:
            clauses.append(Listing.city == filters.city)
        if filters.rooms is not None:
            clauses.append(Listing.rooms == filters.rooms)

        if filters.price_min is not None:
            clauses.append(Listing.price_num >= filters.price_min)
        if filters.price_max is not None:
            clauses.append(Listing.price_num <= filters.price_max)

        # NULL comparisons are never true, so listings without an area drop out here
        if filters.area_min is not None:
            clauses.append(Listing.area_num >= filters.area_min)
        if filters.area_max is not None:
            clauses.append(Listing.area_num <= filters.area_max)

        return clauses

    # ------------------------------------------
    # Sorting
    # ------------------------------------------
    @staticmethod
    def ordering(sort: Optional[str]) -> list:
        key = normalize_sort(sort)
        field_name, direction = key.rsplit("-", 1)
        order = asc if direction == "asc" else desc

        if field_name == "cena":
            primary = [order(Listing.price_num)]
        elif field_name == "powierzchnia":
            # Listings without an area go last in both directions
            primary = [asc(Listing.area_num.is_(None)), order(Listing.area_num)]
        else:
            return [order(Listing.created_at), order(Listing.id)]

        return primary + [desc(Listing.created_at), asc(Listing.id)]

    # ------------------------------------------
    # Paging
    # ------------------------------------------
    def search(self, filters: ListingFilters, caller: Optional[tables.User] = None,
               page: int = 1, limit: int = 9, include_inactive: bool = False) -> Page:
        page = max(int(page or 1), 1)
        limit = min(max(int(limit or 1), 1), MAX_PAGE_SIZE)

        query = self.db.query(Listing).filter(*self.conditions(filters, caller, include_inactive))
        total = query.count()

        items = (
            query.options(joinedload(Listing.owner), selectinload(Listing.files))
            .order_by(*self.ordering(filters.sort))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        logger.debug(f"Listing query matched {total} rows (page {page}, limit {limit})")
        return Page(items=items, total=total, page=page, limit=limit, filters=filters.as_dict())

    # ------------------------------------------
    # Facets
    # ------------------------------------------
    def _distinct(self, column) -> List[Any]:
        rows = (
            self.db.query(column)
            .filter(Listing.is_active.is_(True), column.isnot(None))
            .distinct()
            .all()
        )
        return [value for (value,) in rows if value not in (None, "")]

    def facets(self) -> Dict[str, Any]:
        """Distinct filter values and numeric ranges currently present among active listings."""
        price_min, price_max = (
            self.db.query(func.min(Listing.price_num), func.max(Listing.price_num))
            .filter(Listing.is_active.is_(True), Listing.price_num > 0)
            .one()
        )
        area_min, area_max = (
            self.db.query(func.min(Listing.area_num), func.max(Listing.area_num))
            .filter(Listing.is_active.is_(True), Listing.area_num.isnot(None))
            .one()
        )

        return {
            "categories": sorted(self._distinct(Listing.category)),
            "regions": sorted(self._distinct(Listing.region)),
            "cities": sorted(self._distinct(Listing.city)),
            "statuses": sorted(self._distinct(Listing.status)),
            "price": {"min": price_min or 0, "max": price_max or 0},
            "area": {"min": area_min or 0, "max": area_max or 0},
            "rooms": sorted(int(r) for r in self._distinct(Listing.rooms)),
        }

    # ------------------------------------------
    # Admin statistics
    # ------------------------------------------
    def admin_stats(self) -> Dict[str, Any]:
        total = self.db.query(func.count(Listing.id)).scalar() or 0
        active = self.db.query(func.count(Listing.id)).filter(Listing.is_active.is_(True)).scalar() or 0

        by_status = {
            (key or "unknown"): count
            for key, count in self.db.query(Listing.status, func.count(Listing.id)).group_by(Listing.status).all()
        }
        by_category = {
            (key or "unknown"): count
            for key, count in self.db.query(Listing.category, func.count(Listing.id)).group_by(Listing.category).all()
        }

        week_ago = tables.utcnow() - timedelta(days=7)
        new_this_week = (
            self.db.query(func.count(Listing.id)).filter(Listing.created_at >= week_ago).scalar() or 0
        )

        return {
            "total": total,
            "active": active,
            "inactive": total - active,
            "byStatus": by_status,
            "byCategory": by_category,
            "newThisWeek": new_this_week,
        }
