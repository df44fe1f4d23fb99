"""
AdsReporting model representing one daily performance fact row.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import NamedTuple

from pydantic import BaseModel


class CompositeKey(NamedTuple):
    """
    Ordered 12-component natural key of tbl_ads_reporting.

    Field order matches the table's primary key constraint exactly.
    """

    account_id: str | None
    platform_id: str | None
    campaign_id: str | None
    adset_id: str | None
    advertisement_id: str | None
    placement_id: str | None
    ads_processing_dt: date | None
    age_group: str | None
    gender: str | None
    country_code: int | None
    region: str | None
    city: str | None

    def __str__(self) -> str:
        return "|".join("" if v is None else str(v) for v in self)


class AdsReporting(BaseModel):
    """
    Daily ad performance metrics for one breakdown of one placement.

    Key fields are optional at construction so incomplete records can be
    reported by the key completeness check instead of failing model parsing.

    Attributes:
        account_id .. city: Composite key components (see CompositeKey)
        spend, revenue, impressions, clicks, ...: Additive counters
        cpc, cpm, ctr, frequency, ...: Derived ratios (not summable)
        currency .. country_name: Descriptive metadata
    """

    # Composite key
    account_id: str | None = None
    platform_id: str | None = None
    campaign_id: str | None = None
    adset_id: str | None = None
    advertisement_id: str | None = None
    placement_id: str | None = None
    ads_processing_dt: date | None = None
    age_group: str | None = None
    gender: str | None = None
    country_code: int | None = None
    region: str | None = None
    city: str | None = None

    # Core metrics
    spend: float | None = None
    revenue: float | None = None
    purchase_roas: Decimal | None = None
    impressions: int | None = None
    clicks: int | None = None
    unique_clicks: int | None = None
    cost_per_unique_click: Decimal | None = None
    link_clicks: int | None = None
    unique_link_clicks: int | None = None
    reach: int | None = None
    frequency: Decimal | None = None
    cpc: Decimal | None = None
    cpm: Decimal | None = None
    cpp: Decimal | None = None
    ctr: Decimal | None = None
    unique_ctr: Decimal | None = None

    # Engagement metrics
    post_engagement: int | None = None
    page_engagement: int | None = None
    likes: int | None = None
    comments: int | None = None
    shares: int | None = None
    photo_view: int | None = None
    video_views: int | None = None
    video_p25_watched_actions: int | None = None
    video_p50_watched_actions: int | None = None
    video_p75_watched_actions: int | None = None
    video_p95_watched_actions: int | None = None
    video_p100_watched_actions: int | None = None
    video_avg_percent_watched: Decimal | None = None

    # Conversion metrics
    purchases: int | None = None
    purchase_value: Decimal | None = None
    leads: int | None = None
    cost_per_lead: Decimal | None = None
    mobile_app_install: int | None = None
    cost_per_app_install: Decimal | None = None
    social_spend: Decimal | None = None
    inline_link_clicks: int | None = None
    inline_post_engagement: int | None = None
    cost_per_inline_link_click: Decimal | None = None
    cost_per_inline_post_engagement: Decimal | None = None

    # Metadata
    currency: str | None = None
    attribution_setting: str | None = None
    date_start: str | None = None
    date_stop: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    country_name: str | None = None

    class Config:
        json_schema_extra = {
            "example": {
                "account_id": "act_1234567890",
                "platform_id": "META",
                "campaign_id": "120200000000001",
                "adset_id": "120200000000002",
                "advertisement_id": "120200000000003",
                "placement_id": "facebook_feed",
                "ads_processing_dt": "2025-09-17",
                "age_group": "25-34",
                "gender": "female",
                "country_code": 840,
                "region": "California",
                "city": "Los Angeles",
                "spend": 12.5,
                "impressions": 1000,
                "clicks": 25,
                "currency": "USD"
            }
        }
