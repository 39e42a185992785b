"""
Pydantic Models for Request/Response Validation
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal

Phase = Literal["1-phase", "3-phase"]


# Pricing Models
class LineItem(BaseModel):
    """Offer line item used for contribution margin (DB)"""
    quantity: float = 1
    unit_price: float = 0
    total: float = 0
    cost_price: Optional[float] = None
    supplier_cost_price_at_creation: Optional[float] = None
    line_type: Optional[str] = None


class OfferDBRequest(BaseModel):
    line_items: List[LineItem]


class LinePriceRequest(BaseModel):
    """Sale price for one line from cost and margin"""
    cost_price: float = Field(..., ge=0)
    margin_percentage: float = Field(..., description="Margin on sale price, percent")
    quantity: float = Field(default=1, gt=0)


class PriceRequest(BaseModel):
    """Customer price with tier and volume discounts"""
    cost_price: float = Field(..., ge=0)
    quantity: float = Field(default=1, gt=0)
    margin_percent: float = Field(default=25)
    customer_tier: str = Field(default="standard", description="standard, silver, gold or platinum")
    customer_discount_override: Optional[float] = None
    fixed_markup: Optional[float] = None
    round_to: Optional[float] = Field(None, description="Round sale price up to this step")
    order_total_dkk: Optional[float] = None


class SupplierOption(BaseModel):
    supplier_id: Optional[str] = None
    supplier_name: str
    sku: str = ""
    cost_price: float = Field(..., ge=0)
    is_available: bool = True
    lead_time_days: Optional[int] = None


class ComparePricesRequest(BaseModel):
    products: List[SupplierOption]
    quantity: float = Field(default=1, gt=0)
    margin_percent: float = 25
    customer_tier: str = "standard"


class MarginItem(BaseModel):
    description: Optional[str] = None
    cost: float = 0
    sale: float = 0


class MarginAnalysisRequest(BaseModel):
    items: List[MarginItem]
    minimum_margin_percent: float = 15


class SuggestPriceRequest(BaseModel):
    cost_price: float = Field(..., ge=0)
    target_margin: float = 25
    historical_prices: Optional[List[float]] = None
    competitor_prices: Optional[List[float]] = None


# Kalkia Models
class KalkiaItem(BaseModel):
    """One calculation node with its variant, materials and rules"""
    node: Dict[str, Any]
    variant: Optional[Dict[str, Any]] = None
    materials: List[Dict[str, Any]] = []
    rules: List[Dict[str, Any]] = []
    quantity: float = Field(default=1, gt=0)
    conditions: Dict[str, Any] = {}
    power_watts: Optional[float] = Field(None, description="Load for cable sizing")
    cable_length: Optional[float] = Field(None, description="Cable run in meters")
    installation_method: str = "B2"


class KalkiaRequest(BaseModel):
    items: List[KalkiaItem]
    building_profile_id: Optional[str] = None
    customer_id: Optional[str] = Field(None, description="Applies customer product prices and supplier agreements")
    hourly_rate: Optional[float] = None
    margin_percentage: float = 0
    discount_percentage: float = 0
    vat_percentage: float = 25
    risk_percentage: float = 0


# Electrical Models
class CableSizeRequest(BaseModel):
    power_watts: float = Field(..., gt=0)
    length_meters: float = Field(..., gt=0)
    voltage: float = Field(230, gt=0)
    phase: Phase = "1-phase"
    power_factor: float = Field(1.0, gt=0, le=1)
    installation_method: str = "B2"
    core_count: int = 3
    ambient_temp_c: float = 30
    grouped_cables: int = Field(1, ge=1)
    cable_type: str = "PVT"
    max_voltage_drop_percent: float = Field(4, gt=0)


class LoadEntry(BaseModel):
    description: Optional[str] = None
    category: str = Field(..., description="lighting, socket_outlet, heating, cooking, ev_charger, ...")
    rated_power_watts: float
    quantity: int = 1
    demand_factor: Optional[float] = None
    phase_assignment: Optional[int] = Field(None, ge=1, le=3, description="Fixed phase on 3-phase supplies")


class LoadRequest(BaseModel):
    loads: List[LoadEntry]
    phase: Phase = "3-phase"
    building_type: str = "residential"


class RoomSpec(BaseModel):
    name: str
    room_type: Optional[str] = None
    is_wet_room: bool = False
    area_m2: float = 0
    floor: int = 0
    cable_distance_m: Optional[float] = Field(None, description="Measured cable run to the panel")
    loads: List[LoadEntry] = []


class ElectricalProjectRequest(BaseModel):
    rooms: List[RoomSpec]
    supply_phase: Phase = "3-phase"
    building_type: str = "residential"
    is_renovation: bool = False
    existing_main_fuse_a: Optional[float] = None
    default_installation_method: str = "B2"
    max_cable_run_m: Optional[float] = None


# Solar Models
class SolarCalculationRequest(BaseModel):
    panel_count: int = Field(..., gt=0)
    panel_code: str
    inverter_code: str
    mounting_code: str
    battery_code: str = "none"
    margin: float = Field(default=0.25, description="Margin as a fraction")
    discount: float = Field(default=0, description="Discount as a fraction")
    include_vat: bool = True
    assumptions: Optional[Dict[str, float]] = None


class SolarROIRequest(BaseModel):
    investment_amount: float = Field(..., gt=0)
    annual_production: float = Field(..., ge=0, description="kWh per year")
    electricity_price: float = Field(..., gt=0, description="DKK per kWh")
    self_consumption_rate: float = Field(default=30, description="Percent")


class ElectricianJobRequest(BaseModel):
    hours: float = Field(..., ge=0)
    hourly_rate: float = Field(..., ge=0)
    materials_cost: float = Field(default=0, ge=0)
    materials_markup: float = Field(default=25, description="Percent")


# Offer Models
class RiskContext(BaseModel):
    """Offer context the risk rules run against"""
    calculation_id: Optional[str] = None
    building_type: Optional[str] = None
    building_age_years: Optional[int] = None
    rooms: List[Dict[str, Any]] = []
    total_price: Optional[float] = None
    margin_percentage: Optional[float] = None
    component_count: Optional[int] = None
    has_bathroom_work: bool = False
    has_outdoor_work: bool = False


class OfferTextRequest(BaseModel):
    component_codes: List[str] = []
    categories: List[str] = []
    room_types: List[str] = []
    room_count: int = 0
    building_profile: Optional[str] = None
    building_age_years: Optional[int] = None
    building_type: Optional[str] = None
    total_price: Optional[float] = None
    component_count: Optional[int] = None
    has_bathroom_work: bool = False
    has_outdoor_work: bool = False
    existing: Optional[Dict[str, Any]] = Field(None, description="Offer texts to merge into")


# Estimation Models
class AnalyzeProjectRequest(BaseModel):
    description: str = Field(..., min_length=10, description="Free-text project description (Danish)")
    hourly_rate: Optional[float] = None
    margin_percentage: Optional[float] = None
    risk_buffer_percentage: Optional[float] = None
    customer_name: Optional[str] = None
    project_address: Optional[str] = None


class QuickAnalyzeRequest(BaseModel):
    description: str = Field(..., min_length=10)


class CalculationFeedbackRequest(BaseModel):
    """Actual outcome of a finished auto-calculated project"""
    calculation_id: str
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    estimated_material_cost: Optional[float] = None
    actual_material_cost: Optional[float] = None
    offer_accepted: Optional[bool] = None
    project_profitable: Optional[bool] = None
    customer_satisfaction: Optional[int] = Field(None, ge=1, le=5)
    notes: Optional[str] = None


# Supplier Models
class SupplierSyncRequest(BaseModel):
    skus: Optional[List[str]] = Field(None, description="Only these SKUs (all when empty)")


class SupplierCredentialsTest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class SalePriceRequest(BaseModel):
    """Cost price priced through the supplier's margin rules"""
    cost_price: float = Field(..., ge=0)
    supplier_product_id: Optional[str] = None
    category: Optional[str] = None
    sub_category: Optional[str] = None
    customer_id: Optional[str] = None


# Price Explanation Models
class PriceComponentEntry(BaseModel):
    name: str
    quantity: float = Field(default=1, gt=0)
    price: float = 0
    room: Optional[str] = None


class PriceExplanationRequest(BaseModel):
    labor_cost: float = Field(..., ge=0)
    material_cost: float = Field(..., ge=0)
    total_price: float = Field(..., gt=0)
    margin_percentage: float = 0
    components: List[PriceComponentEntry] = []
    rooms: Optional[List[str]] = None
    project_type: Optional[Literal["renovation", "new_build", "extension", "maintenance"]] = None
    building_type: Optional[str] = None


class UpgradeOption(BaseModel):
    name: str
    price_addition: float = Field(..., ge=0)
    description: Optional[str] = None


class PriceComparisonRequest(BaseModel):
    offer: PriceExplanationRequest
    upgrades: List[UpgradeOption] = []
