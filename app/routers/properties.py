# routers/properties.py
from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form, Query
from sqlalchemy.orm import Session, joinedload, selectinload
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from typing import List, Optional
import json
import uuid
import logging

from app.core.database import get_db
from app.core.security import (
    get_current_user, get_current_admin, get_optional_user, is_owner_or_admin, require_owner_or_admin
)
from app.models import tables
from app.schemas import (
    ListingCreate, ListingUpdate, ListingStatusUpdate, CoverRequest, ListingOut, ListingFacets,
    ListingStats, dump, parse_or_400
)
from app.services.listing_query import ListingQuery, ListingFilters, Page
from app.utils.storage import LISTING_MEDIA, save_uploads

router = APIRouter()

logger = logging.getLogger(__name__)


def listing_filters(
    search: Optional[str] = None,
    kategoria: Optional[str] = None,
    status_tag: Optional[str] = Query(None, alias="status"),
    typ: Optional[str] = None,
    wojewodztwo: Optional[str] = None,
    miasto: Optional[str] = None,
    cena_min: Optional[float] = Query(None, alias="cenaMin"),
    cena_max: Optional[float] = Query(None, alias="cenaMax"),
    powierzchnia_min: Optional[float] = Query(None, alias="powierzchniaMin"),
    powierzchnia_max: Optional[float] = Query(None, alias="powierzchniaMax"),
    pokoje: Optional[int] = None,
    sort: Optional[str] = None,
    my: bool = False,
) -> ListingFilters:
    return ListingFilters(
        search=search,
        category=kategoria,
        status=status_tag,
        listing_type=typ,
        region=wojewodztwo,
        city=miasto,
        price_min=cena_min,
        price_max=cena_max,
        area_min=powierzchnia_min,
        area_max=powierzchnia_max,
        rooms=pokoje,
        sort=sort,
        mine=my,
    )


def _page_response(page: Page, include_filters: bool = False):
    body = {
        "success": True,
        "properties": [dump(ListingOut, listing) for listing in page.items],
        "currentPage": page.page,
        "totalPages": page.total_pages,
        "totalProperties": page.total,
    }
    if include_filters:
        body["filters"] = page.filters
    return body


def _load_listing(db: Session, listing_id: uuid.UUID) -> tables.Listing:
    listing = (
        db.query(tables.Listing)
        .options(joinedload(tables.Listing.owner), selectinload(tables.Listing.files))
        .filter(tables.Listing.id == listing_id)
        .first()
    )
    if not listing:
        raise HTTPException(status_code=404, detail="Property not found")
    return listing


def _parse_json_field(raw: Optional[str], field_name: str) -> dict:
    if raw is None or raw.strip() == "":
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail=f"Field '{field_name}' must be valid JSON")
    if not isinstance(value, dict):
        raise HTTPException(status_code=400, detail=f"Field '{field_name}' must be a JSON object")
    return value


# ===========================
# 1. PUBLIC: LIST / SEARCH
# ===========================
@router.get("/")
def get_listings(
    filters: ListingFilters = Depends(listing_filters),
    page: int = Query(1, ge=1),
    limit: int = Query(9, ge=1, le=100),
    current_user: Optional[tables.User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    try:
        result = ListingQuery(db).search(filters, caller=current_user, page=page, limit=limit)
        return _page_response(result)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching listings: {e}")
        raise HTTPException(status_code=500, detail="Error fetching properties")


@router.get("/filters/options")
def get_filter_options(db: Session = Depends(get_db)):
    try:
        facets = ListingFacets.model_validate(ListingQuery(db).facets())
        return {"success": True, "data": facets.model_dump(by_alias=True)}
    except Exception as e:
        logger.error(f"Error computing filter options: {e}")
        raise HTTPException(status_code=500, detail="Error fetching filter options")


@router.get("/search/advanced")
def advanced_search(
    filters: ListingFilters = Depends(listing_filters),
    page: int = Query(1, ge=1),
    limit: int = Query(9, ge=1, le=100),
    current_user: Optional[tables.User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    filters.advanced = True
    try:
        result = ListingQuery(db).search(filters, caller=current_user, page=page, limit=limit)
        return _page_response(result, include_filters=True)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in advanced search: {e}")
        raise HTTPException(status_code=500, detail="Error searching properties")


# ===========================
# 2. ADMIN
# ===========================
@router.get("/admin/all")
def admin_get_all(
    filters: ListingFilters = Depends(listing_filters),
    page: int = Query(1, ge=1),
    limit: int = Query(9, ge=1, le=100),
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    try:
        result = ListingQuery(db).search(filters, caller=current_user, page=page, limit=limit, include_inactive=True)
        return _page_response(result)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching listings for admin: {e}")
        raise HTTPException(status_code=500, detail="Error fetching properties")


@router.put("/admin/{listing_id}/status")
def admin_update_status(
    listing_id: uuid.UUID,
    data: ListingStatusUpdate,
    current_user: tables.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    try:
        if data.is_active is None and data.status is None:
            raise HTTPException(status_code=400, detail="Provide isActive and/or status")

        listing = _load_listing(db, listing_id)
        if data.is_active is not None:
            listing.is_active = data.is_active
        if data.status is not None:
            listing.status = data.status

        db.commit()
        listing = _load_listing(db, listing_id)

        logger.info(f"Admin {current_user.email} set listing {listing_id} active={listing.is_active} status={listing.status}")
        return {"success": True, "message": "Property status updated", "property": dump(ListingOut, listing)}

    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error updating listing status: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")


@router.get("/admin/stats")
def admin_stats(current_user: tables.User = Depends(get_current_admin), db: Session = Depends(get_db)):
    try:
        stats = ListingStats.model_validate(ListingQuery(db).admin_stats())
        return {"success": True, "data": stats.model_dump(by_alias=True)}
    except Exception as e:
        logger.error(f"Error computing listing stats: {e}")
        raise HTTPException(status_code=500, detail="Error fetching statistics")


# ===========================
# 3. PUBLIC: BY OWNER / DETAIL
# ===========================
@router.get("/user/{user_id}")
def get_user_listings(
    user_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(9, ge=1, le=100),
    sort: Optional[str] = None,
    current_user: Optional[tables.User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    filters = ListingFilters(owner_id=user_id, sort=sort)
    result = ListingQuery(db).search(
        filters,
        caller=current_user,
        page=page,
        limit=limit,
        include_inactive=is_owner_or_admin(current_user, user_id),
    )
    return _page_response(result)


@router.get("/{listing_id}")
def get_listing_detail(
    listing_id: uuid.UUID,
    current_user: Optional[tables.User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    listing = _load_listing(db, listing_id)
    is_owner = is_owner_or_admin(current_user, listing.user_id)

    # Inactive listings are invisible to everyone but their owner and admins
    if not listing.is_active and not is_owner:
        raise HTTPException(status_code=404, detail="Property not found")

    return {"success": True, "property": dump(ListingOut, listing), "isOwner": is_owner}


# ===========================
# 4. OWNER: CREATE (With Files)
# ===========================
@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_listing(
    # --- Form Fields ---
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(""),
    price: Optional[str] = Form(""),
    category: Optional[str] = Form(None),
    listing_status: Optional[str] = Form(None, alias="status"),
    location: Optional[str] = Form(None),   # JSON object
    details: Optional[str] = Form(None),    # JSON object

    # --- File Uploads ---
    files: Optional[List[UploadFile]] = File(None),

    # --- Auth & DB ---
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    # 1. Validate fields before touching storage
    data = parse_or_400(ListingCreate, {
        "name": name,
        "description": description,
        "price": price,
        "category": category,
        "status": listing_status,
        "location": _parse_json_field(location, "location"),
        "details": _parse_json_field(details, "details"),
    })

    # 2. Store files (count and types are checked before anything is written)
    batch = await save_uploads(files, LISTING_MEDIA)

    # 3. Create DB Entry
    try:
        location_data = data.location.model_dump()
        new_listing = tables.Listing(
            user_id=current_user.id,
            name=data.name,
            description=data.description or "",
            price=data.price or "",
            category=data.category,
            status=data.status,
            details=data.details,
            is_active=True,
            **location_data,
        )
        for position, stored in enumerate(batch):
            new_listing.files.append(tables.ListingFile(
                position=position,
                filename=stored.filename,
                original_name=stored.original_name,
                path=stored.path,
                mimetype=stored.mimetype,
                size=stored.size,
                is_cover=(position == 0),
            ))

        db.add(new_listing)
        db.commit()
        listing = _load_listing(db, new_listing.id)

        logger.info(f"Listing created: {listing.id} by {current_user.email} with {len(batch)} file(s)")
        return {"success": True, "message": "Property created", "property": dump(ListingOut, listing)}

    except HTTPException:
        db.rollback()
        batch.discard()
        raise
    except IntegrityError as e:
        db.rollback()
        batch.discard()
        logger.error(f"Database integrity error creating listing: {e}")
        raise HTTPException(status_code=409, detail="Duplicate entry or constraint violation")
    except SQLAlchemyError as e:
        db.rollback()
        batch.discard()
        logger.error(f"Database error creating listing: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")
    except Exception as e:
        db.rollback()
        batch.discard()
        logger.error(f"Unexpected error creating listing: {e}")
        raise HTTPException(status_code=500, detail="An unexpected error occurred")


# ===========================
# 5. OWNER: UPDATE / DELETE / COVER
# ===========================
@router.put("/{listing_id}")
def update_listing(
    listing_id: uuid.UUID,
    data: ListingUpdate,
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        listing = _load_listing(db, listing_id)
        require_owner_or_admin(current_user, listing.user_id, "Not allowed to edit this property")

        changes = data.model_dump(exclude_unset=True)
        location = changes.pop("location", None)
        for key, value in changes.items():
            if key == "name" and not (value or "").strip():
                raise HTTPException(status_code=400, detail="Listing name is required")
            setattr(listing, key, value)
        if location is not None:
            for key, value in location.items():
                setattr(listing, key, value)

        db.commit()
        listing = _load_listing(db, listing_id)

        logger.info(f"Listing updated: {listing_id} by {current_user.email}")
        return {"success": True, "message": "Property updated", "property": dump(ListingOut, listing)}

    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error updating listing {listing_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")


@router.delete("/{listing_id}")
def delete_listing(
    listing_id: uuid.UUID,
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Soft delete: the listing is hidden, never removed."""
    try:
        listing = _load_listing(db, listing_id)
        require_owner_or_admin(current_user, listing.user_id, "Not allowed to delete this property")

        listing.is_active = False
        db.commit()

        logger.info(f"Listing deactivated: {listing_id} by {current_user.email}")
        return {"success": True, "message": "Property deleted"}

    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error deleting listing {listing_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")


@router.patch("/{listing_id}/cover")
def set_cover(
    listing_id: uuid.UUID,
    data: CoverRequest,
    current_user: tables.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        listing = _load_listing(db, listing_id)
        require_owner_or_admin(current_user, listing.user_id, "Not allowed to edit this property")

        owned_file = (
            db.query(tables.ListingFile.id)
            .filter(tables.ListingFile.id == data.file_id, tables.ListingFile.listing_id == listing.id)
            .first()
        )
        if not owned_file:
            raise HTTPException(status_code=404, detail="File not found for this property")

        # One statement flips every flag, so there is never a moment with zero or two covers
        db.query(tables.ListingFile).filter(tables.ListingFile.listing_id == listing.id).update(
            {tables.ListingFile.is_cover: tables.ListingFile.id == data.file_id},
            synchronize_session=False,
        )
        db.commit()
        listing = _load_listing(db, listing_id)

        return {"success": True, "message": "Cover updated", "property": dump(ListingOut, listing)}

    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error setting cover for {listing_id}: {e}")
        raise HTTPException(status_code=500, detail="Database error occurred")
