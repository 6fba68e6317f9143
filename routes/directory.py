from fastapi import APIRouter, Depends, Query
from typing import Optional
from utils.dependencies import Actor, get_actor, get_directory

router = APIRouter(prefix="/directory", tags=["Directory"])


@router.get("/drivers")
async def list_drivers(
    search: Optional[str] = Query(None, description="Name, fleet id or phone fragment"),
    actor: Actor = Depends(get_actor),
    directory=Depends(get_directory),
):
    drivers = await directory.drivers(search)
    return {
        "success": True,
        "message": "Drivers retrieved successfully",
        "data": drivers,
        "count": len(drivers),
    }


@router.get("/merchants")
async def list_merchants(
    search: Optional[str] = Query(None, description="Name, vendor id or phone fragment"),
    actor: Actor = Depends(get_actor),
    directory=Depends(get_directory),
):
    merchants = await directory.merchants(search)
    return {
        "success": True,
        "message": "Merchants retrieved successfully",
        "data": merchants,
        "count": len(merchants),
    }


@router.post("/refresh")
def refresh_directory(
    actor: Actor = Depends(get_actor),
    directory=Depends(get_directory),
):
    """Drop the cached driver and merchant lists; the next read goes to the hosted database."""
    removed = directory.invalidate()
    return {
        "success": True,
        "message": "Directory cache cleared",
        "data": {"removed_keys": removed},
    }
