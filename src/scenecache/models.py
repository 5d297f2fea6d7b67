"""
Manifest schema for scene bundles.

The remote service and the on-disk ``data.json`` use PascalCase keys
(``DtHdId``, ``EnhancedMesh``, ``ScanMeshes`` ...). Keys are matched
case-insensitively on input so camelCase payloads parse as well; unknown keys
are ignored. Models always serialise with their canonical aliases.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

ARCHIVED_STATUS = "ARCHIVED"

_SAFE_COMPONENT = re.compile(r'^[A-Za-z0-9._\-]+$')


def is_safe_component(value: str) -> bool:
    """True when ``value`` can be used as a single file or directory name."""
    return bool(value) and value not in ('.', '..') and bool(_SAFE_COMPONENT.match(value))


def _alias_names(field_info) -> List[str]:
    names: List[str] = []
    if isinstance(field_info.validation_alias, AliasChoices):
        names.extend(str(choice) for choice in field_info.validation_alias.choices)
    elif isinstance(field_info.validation_alias, str):
        names.append(field_info.validation_alias)
    if field_info.alias:
        names.append(field_info.alias)
    return names


class _WireModel(BaseModel):
    """Base model matching wire keys without regard to case."""

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    @model_validator(mode='before')
    @classmethod
    def _match_keys_case_insensitively(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        lookup: Dict[str, str] = {}
        for name, field_info in cls.model_fields.items():
            lookup[name.lower()] = name
            for alias in _alias_names(field_info):
                lookup[alias.lower()] = name

        normalized: Dict[str, Any] = {}
        for key, value in data.items():
            target = lookup.get(str(key).lower())
            if target is None:
                continue
            # First occurrence wins when a payload repeats a key in two spellings
            normalized.setdefault(target, value)
        return normalized


class GeoLocation(_WireModel):
    latitude: float = Field(default=0.0, alias='Latitude')
    longitude: float = Field(default=0.0, alias='Longitude')
    altitude: float = Field(default=0.0, alias='Altitude')


class AssetPlacement(_WireModel):
    """One instance of an asset: local offset, quaternion rotation, uniform scale."""

    item_id: str = Field(alias='DtHdAssetItemId')
    name: Optional[str] = Field(default=None, alias='Name')
    location: Optional[GeoLocation] = Field(default=None, alias='Location')
    local_x: float = Field(default=0.0, alias='LocalX')
    local_y: float = Field(default=0.0, alias='LocalY')
    local_z: float = Field(default=0.0, alias='LocalZ')
    rotation_x: float = Field(default=0.0, alias='RotationX')
    rotation_y: float = Field(default=0.0, alias='RotationY')
    rotation_z: float = Field(default=0.0, alias='RotationZ')
    rotation_w: float = Field(default=1.0, alias='RotationW')
    scale: float = Field(default=1.0, alias='Scale')
    created_date: Optional[datetime] = Field(default=None, alias='CreatedDate')
    updated_date: Optional[datetime] = Field(default=None, alias='UpdatedDate')

    @property
    def position(self) -> tuple:
        return (self.local_x, self.local_y, self.local_z)

    @property
    def rotation(self) -> tuple:
        return (self.rotation_x, self.rotation_y, self.rotation_z, self.rotation_w)


class AssetDescriptor(_WireModel):
    asset_id: str = Field(alias='DtHdAssetId')
    name: Optional[str] = Field(default=None, alias='Name')
    description: Optional[str] = Field(default=None, alias='Description')
    items: List[AssetPlacement] = Field(default_factory=list, alias='Items')
    file_url: str = Field(default='', alias='FileUrl')
    file_size_bytes: int = Field(default=0, alias='FileSizeBytes')
    format: Optional[str] = Field(default=None, alias='Format')
    asset_type: Optional[str] = Field(default=None, alias='AssetType')
    external_ref_id: Optional[str] = Field(default=None, alias='ExternalRefId')
    edit_mode: Optional[str] = Field(default=None, alias='EditMode')
    edit_role: Optional[str] = Field(default=None, alias='EditRole')
    physics_mode: Optional[str] = Field(default=None, alias='PhysicsMode')
    created_date: Optional[datetime] = Field(default=None, alias='CreatedDate')
    updated_date: Optional[datetime] = Field(default=None, alias='UpdatedDate')

    @field_validator('asset_id')
    @classmethod
    def _asset_id_is_file_name(cls, value: str) -> str:
        if not is_safe_component(value):
            raise ValueError(f"asset id {value!r} is not a valid file name")
        return value

    @field_validator('file_url', mode='before')
    @classmethod
    def _none_url_is_empty(cls, value: Any) -> Any:
        return '' if value is None else value


class ScanMeshDescriptor(_WireModel):
    scan_id: str = Field(alias='DtHdScanId')
    status: str = Field(default='', alias='Status')
    site_name: Optional[str] = Field(default=None, alias='SiteName')
    thumbnail: Optional[str] = Field(default=None, alias='Thumbnail')
    scan_location: Optional[GeoLocation] = Field(default=None, alias='ScanLocation')
    ref_x: float = Field(default=0.0, alias='RefX')
    ref_y: float = Field(default=0.0, alias='RefY')
    ref_z: float = Field(default=0.0, alias='RefZ')
    floor: int = Field(default=0, alias='Floor')
    scan_mesh_url: str = Field(default='', alias='ScanMeshUrl')
    created_date: Optional[datetime] = Field(default=None, alias='CreatedDate')
    updated_date: Optional[datetime] = Field(default=None, alias='UpdatedDate')

    @field_validator('scan_id')
    @classmethod
    def _scan_id_is_file_name(cls, value: str) -> str:
        if not is_safe_component(value):
            raise ValueError(f"scan id {value!r} is not a valid file name")
        return value

    @field_validator('status', 'scan_mesh_url', mode='before')
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return '' if value is None else value

    @property
    def is_archived(self) -> bool:
        return self.status.upper() == ARCHIVED_STATUS

    @property
    def is_downloadable(self) -> bool:
        return bool(self.scan_mesh_url) and not self.is_archived


class Manifest(_WireModel):
    """Description of one scene bundle, keyed by ``scene_id``."""

    scene_id: str = Field(alias='DtHdId')
    user_id: Optional[str] = Field(default=None, alias='UserId')
    name: Optional[str] = Field(default=None, alias='Name')
    location: Optional[GeoLocation] = Field(default=None, alias='Location')
    ref_x: float = Field(default=0.0, alias='RefX')
    ref_y: float = Field(default=0.0, alias='RefY')
    ref_z: float = Field(default=0.0, alias='RefZ')
    spawn_position_x: float = Field(default=0.0, alias='SpawnPositionX')
    spawn_position_y: float = Field(default=0.0, alias='SpawnPositionY')
    spawn_position_z: float = Field(default=0.0, alias='SpawnPositionZ')
    spawn_heading: float = Field(default=0.0, alias='SpawnHeading')
    is_indoor: bool = Field(default=False, alias='IsIndoor')
    is_public: bool = Field(default=False, alias='IsPublic')
    file_size_bytes: int = Field(default=0, alias='FileSizeBytes')
    enhanced_mesh: Optional[str] = Field(default=None, alias='EnhancedMesh')
    assets: List[AssetDescriptor] = Field(default_factory=list, alias='Assets')
    scan_meshes: List[ScanMeshDescriptor] = Field(default_factory=list, alias='ScanMeshes')
    environment_url: Optional[str] = Field(
        default=None,
        alias='DtEnvironmentUrl',
        validation_alias=AliasChoices('DtEnvironmentUrl', 'ReflectionProbeInfoUrl'),
    )
    created_date: Optional[datetime] = Field(default=None, alias='CreatedDate')
    updated_date: Optional[datetime] = Field(default=None, alias='UpdatedDate')

    @field_validator('assets', 'scan_meshes', mode='before')
    @classmethod
    def _null_list_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode='after')
    def _ids_are_unique(self) -> 'Manifest':
        asset_ids = [asset.asset_id for asset in self.assets]
        if len(asset_ids) != len(set(asset_ids)):
            raise ValueError(f"duplicate asset ids in manifest {self.scene_id!r}")
        scan_ids = [scan.scan_id for scan in self.scan_meshes]
        if len(scan_ids) != len(set(scan_ids)):
            raise ValueError(f"duplicate scan ids in manifest {self.scene_id!r}")
        return self

    @property
    def has_enhanced_mesh(self) -> bool:
        return bool(self.enhanced_mesh)

    def find_scan(self, scan_id: str) -> Optional[ScanMeshDescriptor]:
        return next((scan for scan in self.scan_meshes if scan.scan_id == scan_id), None)

    def find_asset(self, asset_id: str) -> Optional[AssetDescriptor]:
        return next((asset for asset in self.assets if asset.asset_id == asset_id), None)

    def downloadable_scans(self) -> List[ScanMeshDescriptor]:
        """Scans that bulk download fetches: URL present and not archived."""
        return [scan for scan in self.scan_meshes if scan.is_downloadable]

    def expected_scan_ids(self) -> Set[str]:
        """Scan IDs a complete local cache must hold, no more and no less."""
        return {scan.scan_id for scan in self.downloadable_scans()}

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
