"""Registry of synced farm tables, in dependency order."""

from __future__ import annotations

from herd_sync.sync.entity_config import EntityConfig, FieldKind, FieldSpec, ReferenceSpec
from herd_sync.sync.errors import UnknownEntityTypeError

K = FieldKind

_FARM = ("farm_id",)


def _f(column: str, kind: FieldKind = K.TEXT, *, required: bool = False) -> FieldSpec:
    return FieldSpec(column=column, kind=kind, required=required)


# ── Reference data ──────────────────────────────────────────────

BREEDS = EntityConfig(
    entity_type="breeds",
    table_name="breeds",
    fields=(
        _f("name", required=True),
        _f("category"),
        _f("characteristics"),
        _f("is_active", K.BOOLEAN),
    ),
    farm_scoped=False,
    order_by="name",
)

HEALTH_RECORD_TYPES = EntityConfig(
    entity_type="health_record_types",
    table_name="health_record_types",
    fields=(
        _f("name", required=True),
        _f("description"),
        _f("icon"),
        _f("color"),
        _f("is_active", K.BOOLEAN),
    ),
    farm_scoped=False,
    supports_deletes=False,
    order_by="name",
)

TREATMENT_PLANS = EntityConfig(
    entity_type="treatment_plans",
    table_name="treatment_plans",
    fields=(
        _f("name", required=True),
        _f("condition"),
        _f("description"),
        _f("notes"),
    ),
    order_by="name",
)

TREATMENT_PLAN_STEPS = EntityConfig(
    entity_type="treatment_plan_steps",
    table_name="treatment_plan_steps",
    fields=(
        _f("step_number", K.INTEGER, required=True),
        _f("day_number", K.INTEGER),
        _f("title", required=True),
        _f("description"),
        _f("medication"),
        _f("dosage"),
        _f("administration_method"),
        _f("notes"),
    ),
    references=(
        ReferenceSpec("treatment_plan", "treatment_plan_id", "treatment_plans", required=True),
    ),
    farm_scoped=False,
    order_by="step_number",
)

CONTACTS = EntityConfig(
    entity_type="contacts",
    table_name="contacts",
    fields=(
        _f("name", required=True),
        _f("type"),
        _f("company"),
        _f("is_business", K.BOOLEAN),
        _f("phone"),
        _f("email"),
        _f("address_line1"),
        _f("address_line2"),
        _f("city"),
        _f("state"),
        _f("zip_code"),
        _f("country"),
        _f("status"),
        _f("notes"),
    ),
    order_by="name",
)

PASTURES = EntityConfig(
    entity_type="pastures",
    table_name="pastures",
    fields=(
        _f("name", required=True),
        _f("pasture_type"),
        _f("acreage", K.DECIMAL),
        _f("carrying_capacity", K.INTEGER),
        _f("current_occupancy", K.INTEGER),
        _f("condition"),
        _f("last_grazed_date", K.DATE),
        _f("rest_period_days", K.INTEGER),
        _f("forage_type"),
        _f("notes"),
        _f("boundary_coordinates", K.JSON),
        _f("center_lat", K.DECIMAL),
        _f("center_lng", K.DECIMAL),
    ),
    order_by="name",
)

# ── Herd ────────────────────────────────────────────────────────

CATTLE = EntityConfig(
    entity_type="cattle",
    table_name="cattle",
    fields=(
        _f("tag_number", required=True),
        _f("name"),
        _f("sex"),
        _f("cattle_type"),
        _f("date_of_birth", K.DATE),
        _f("color"),
        _f("registration_number"),
        _f("current_weight", K.DECIMAL),
        _f("purchase_date", K.DATE),
        _f("purchase_price", K.DECIMAL),
        _f("current_status"),
        _f("current_stage"),
        _f("production_path"),
        _f("weaning_date", K.DATE),
        _f("weaning_weight", K.DECIMAL),
        _f("exit_reason"),
        _f("exit_date", K.DATE),
        _f("notes"),
        _f("tags"),
        _f("location", K.TEXT_LIST),
        _f("external_sire_name"),
    ),
    references=(
        ReferenceSpec("breed", "breed_id", "breeds"),
        ReferenceSpec("dam", "dam_id", "cattle"),
        ReferenceSpec("sire", "sire_id", "cattle"),
        ReferenceSpec("pasture", "pasture_id", "pastures"),
    ),
    order_by="tag_number",
)

# ── Records depending on cattle ─────────────────────────────────

HEALTH_RECORDS = EntityConfig(
    entity_type="health_records",
    table_name="health_records",
    fields=(
        _f("date", K.DATE),
        _f("record_type"),
        _f("condition"),
        _f("diagnosis"),
        _f("treatment"),
        _f("veterinarian"),
        _f("medication"),
        _f("dosage"),
        _f("administration_method"),
        _f("temperature", K.DECIMAL),
        _f("weight", K.DECIMAL),
        _f("cost", K.DECIMAL),
        _f("notes"),
        _f("follow_up_date", K.DATE),
        _f("follow_up_completed", K.BOOLEAN),
    ),
    references=(
        ReferenceSpec("cattle", "cattle_id", "cattle", copy_fields=_FARM),
        ReferenceSpec("treatment_plan", "treatment_plan_id", "treatment_plans"),
    ),
)

PREGNANCY_RECORDS = EntityConfig(
    entity_type="pregnancy_records",
    table_name="pregnancy_records",
    fields=(
        _f("breeding_date", K.DATE),
        _f("breeding_start_date", K.DATE),
        _f("breeding_end_date", K.DATE),
        _f("expected_calving_date", K.DATE),
        _f("status"),
        _f("breeding_method"),
        _f("ai_technician"),
        _f("semen_source"),
        _f("external_bull_name"),
        _f("confirmation_method"),
        _f("confirmed_date", K.DATE),
        _f("notes"),
    ),
    references=(
        ReferenceSpec("dam", "cow_id", "cattle", copy_fields=_FARM, required=True),
        ReferenceSpec("sire", "bull_id", "cattle"),
    ),
)

CALVING_RECORDS = EntityConfig(
    entity_type="calving_records",
    table_name="calving_records",
    fields=(
        _f("calving_date", K.DATE),
        _f("calving_ease"),
        _f("calf_sex"),
        _f("birth_weight", K.DECIMAL),
        _f("calf_vigor"),
        _f("complications"),
        _f("retained_placenta", K.BOOLEAN),
        _f("assistance_provided"),
        _f("veterinarian_called", K.BOOLEAN),
        _f("notes"),
    ),
    references=(
        ReferenceSpec("dam", "dam_id", "cattle", copy_fields=_FARM, required=True),
        ReferenceSpec("sire", "sire_id", "cattle"),
        ReferenceSpec("calf", "calf_id", "cattle"),
        ReferenceSpec("pregnancy", "pregnancy_id", "pregnancy_records"),
    ),
)

# Sale rows carry no farm_id column; scope comes from the sold animal.
SALE_RECORDS = EntityConfig(
    entity_type="sale_records",
    table_name="sale_records",
    fields=(
        _f("sale_date", K.DATE),
        _f("sale_price", K.DECIMAL),
        _f("sale_weight", K.DECIMAL),
        _f("price_per_pound", K.DECIMAL),
        _f("quickbooks_invoice_id"),
        _f("notes"),
    ),
    references=(
        ReferenceSpec("cattle", "cattle_id", "cattle", copy_fields=_FARM, required=True),
        ReferenceSpec("buyer", "buyer_id", "contacts"),
    ),
    farm_scoped=False,
)

PROCESSING_RECORDS = EntityConfig(
    entity_type="processing_records",
    table_name="processing_records",
    fields=(
        _f("processing_date", K.DATE),
        _f("processor"),
        _f("live_weight", K.DECIMAL),
        _f("hanging_weight", K.DECIMAL),
        _f("processing_cost", K.DECIMAL),
        _f("dress_percentage", K.DECIMAL),
        _f("notes"),
    ),
    references=(ReferenceSpec("cattle", "cattle_id", "cattle", copy_fields=_FARM, required=True),),
)

MORTALITY_RECORDS = EntityConfig(
    entity_type="mortality_records",
    table_name="mortality_records",
    fields=(
        _f("death_date", K.DATE),
        _f("cause"),
        _f("category"),
        _f("disposal_method"),
        _f("veterinarian_called", K.BOOLEAN),
        _f("veterinarian_name"),
        _f("notes"),
    ),
    references=(ReferenceSpec("cattle", "cattle_id", "cattle", copy_fields=_FARM, required=True),),
)

STAGE_TRANSITIONS = EntityConfig(
    entity_type="stage_transitions",
    table_name="stage_transitions",
    fields=(
        _f("from_stage"),
        _f("to_stage"),
        _f("transition_date", K.DATE),
        _f("weight_at_transition", K.DECIMAL),
        _f("notes"),
    ),
    references=(ReferenceSpec("cattle", "cattle_id", "cattle", copy_fields=_FARM, required=True),),
)

PHOTOS = EntityConfig(
    entity_type="photos",
    table_name="photos",
    fields=(
        _f("url", required=True),
        _f("caption"),
        _f("created_at", K.TIMESTAMP),
    ),
    references=(ReferenceSpec("cattle", "cattle_id", "cattle"),),
)

TASKS = EntityConfig(
    entity_type="tasks",
    table_name="tasks",
    fields=(
        _f("title", required=True),
        _f("description"),
        _f("category"),
        _f("priority"),
        _f("status"),
        _f("due_date", K.DATE),
        _f("assigned_to_user_id", K.UUID),
        _f("completed_at", K.TIMESTAMP),
    ),
    references=(ReferenceSpec("related_cattle", "related_cattle_id", "cattle"),),
    order_by="due_date",
)

PASTURE_LOGS = EntityConfig(
    entity_type="pasture_logs",
    table_name="pasture_logs",
    fields=(
        _f("log_type", required=True),
        _f("log_date", K.DATE),
        _f("title"),
        _f("description"),
        _f("soil_ph", K.DECIMAL),
        _f("cost", K.DECIMAL),
        _f("labor_hours", K.DECIMAL),
        _f("status"),
        _f("animals_moved_in", K.INTEGER),
        _f("animals_moved_out", K.INTEGER),
        _f("bale_count", K.INTEGER),
        _f("notes"),
    ),
    references=(ReferenceSpec("pasture", "pasture_id", "pastures", required=True),),
    supports_deletes=False,
)

# Order matters: parents before the tables that reference them.
SYNC_ORDER: tuple[EntityConfig, ...] = (
    BREEDS,
    HEALTH_RECORD_TYPES,
    TREATMENT_PLANS,
    TREATMENT_PLAN_STEPS,
    CONTACTS,
    PASTURES,
    CATTLE,
    HEALTH_RECORDS,
    PREGNANCY_RECORDS,
    CALVING_RECORDS,
    SALE_RECORDS,
    PROCESSING_RECORDS,
    MORTALITY_RECORDS,
    STAGE_TRANSITIONS,
    PHOTOS,
    TASKS,
    PASTURE_LOGS,
)

ENTITY_CONFIGS: dict[str, EntityConfig] = {c.entity_type: c for c in SYNC_ORDER}


def get_entity_config(name: str) -> EntityConfig:
    """Look up a table configuration by entity type or table name."""
    config = ENTITY_CONFIGS.get(name)
    if config is not None:
        return config
    for candidate in SYNC_ORDER:
        if candidate.table_name == name:
            return candidate
    raise UnknownEntityTypeError(name)


def list_entity_types() -> list[str]:
    """Entity types in dependency order."""
    return [c.entity_type for c in SYNC_ORDER]
