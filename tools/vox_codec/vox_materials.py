"""Conversion between MATL/MATT chunks and scene materials.

The default of every optional material property is the default of the
corresponding field on the material dataclass (see vox_types). Reading an
absent MATL key yields that default, and writing a value equal to it omits
the key, so both directions use the same table.
"""
from dataclasses import fields
from typing import Optional

from vox_types import (
    BlendMaterial,
    DiffuseMaterial,
    EmitMaterial,
    GlassMaterial,
    MaterialType,
    Matl,
    MatlType,
    Matt,
    MattType,
    MediaMaterial,
    MetalMaterial,
)

MATERIAL_CLASSES = {
    MatlType.DIFFUSE: DiffuseMaterial,
    MatlType.METAL: MetalMaterial,
    MatlType.GLASS: GlassMaterial,
    MatlType.EMIT: EmitMaterial,
    MatlType.BLEND: BlendMaterial,
    MatlType.MEDIA: MediaMaterial,
}

MATL_TYPES = {cls: mat_type for mat_type, cls in MATERIAL_CLASSES.items()}


def property_defaults(material_class) -> dict:
    """Return {property name: default} for a material class."""
    return {f.name: f.default for f in fields(material_class)}


def matl_to_material(matl: Matl) -> MaterialType:
    """Build the scene material for a MATL chunk.

    Properties the material type does not carry (e.g. `_spec`) are dropped.
    """
    cls = MATERIAL_CLASSES[matl.mat_type]
    values = {}
    for name in property_defaults(cls):
        value = getattr(matl, name)
        if value is not None:
            values[name] = value
    return cls(**values)


def material_to_matl(slot: int, material: MaterialType) -> Matl:
    """Build the MATL chunk for palette slot `slot` (1-255).

    Properties equal to their default are left as None so they are not
    written.
    """
    matl = Matl(id=slot, mat_type=MATL_TYPES[type(material)])
    for name, default in property_defaults(type(material)).items():
        value = getattr(material, name)
        if value != default:
            setattr(matl, name, value)
    return matl


def _value_or(value: Optional[float], default):
    return default if value is None else value


def matt_to_material(matt: Matt) -> MaterialType:
    """Build the scene material for a legacy MATT chunk.

    The MATT weight becomes the property that plays the same role in MATL:
    metal-ness, glass weight or emission.
    """
    if matt.matt_type == MattType.METAL:
        return MetalMaterial(
            rough=_value_or(matt.roughness, MetalMaterial.rough),
            ior=_value_or(matt.ior, MetalMaterial.ior),
            metal=matt.weight,
        )
    if matt.matt_type == MattType.GLASS:
        return GlassMaterial(
            rough=_value_or(matt.roughness, GlassMaterial.rough),
            ior=_value_or(matt.ior, GlassMaterial.ior),
            weight=matt.weight,
        )
    if matt.matt_type == MattType.EMISSIVE:
        # The "power" slider corresponds to MATL's flux
        flux = EmitMaterial.flux if matt.power is None else int(matt.power)
        return EmitMaterial(emit=matt.weight, flux=flux)
    return DiffuseMaterial()
