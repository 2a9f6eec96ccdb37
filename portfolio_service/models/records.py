"""
Typed schemas for the flattened record collections.
"""

import polars as pl

CUSTOMER_SCHEMA = {
    'customer_ref': pl.Int64,
    'customer_number': pl.Utf8,
    'customer_name': pl.Utf8,
    'customer_type': pl.Utf8,
    'given_name': pl.Utf8,
    'surname': pl.Utf8,
    'identification_number': pl.Utf8,
    'email': pl.Utf8,
}

POLICY_SCHEMA = {
    'policy_ref': pl.Int64,
    'customer_ref': pl.Int64,
    'customer_number': pl.Utf8,
    'customer_name': pl.Utf8,
    'customer_type': pl.Utf8,
    'policy_number': pl.Utf8,
    'version_number': pl.Int64,
    'status_id': pl.Int64,
    'status_name': pl.Utf8,
    'inception_date': pl.Date,
    'end_date': pl.Date,
    'produced_date': pl.Date,
    'cancellation_date': pl.Date,
    'uw_year': pl.Int32,
}

COVER_SCHEMA = {
    'cover_ref': pl.Int64,
    'product_ref': pl.Int64,
    'policy_ref': pl.Int64,
    'customer_ref': pl.Int64,
    'customer_number': pl.Utf8,
    'customer_type': pl.Utf8,
    'policy_number': pl.Utf8,
    'version_number': pl.Int64,
    'product_number': pl.Utf8,
    'product_name': pl.Utf8,
    'product_premium': pl.Float64,
    'object_number': pl.Utf8,
    'object_name': pl.Utf8,
    'cover_name': pl.Utf8,
    'insurer_name': pl.Utf8,
    'premium': pl.Float64,
    'nature_damage_premium': pl.Float64,
    'net_year_premium': pl.Float64,
    'insured_amount': pl.Float64,
    'start_date': pl.Date,
    'end_date': pl.Date,
    'has_own_interval': pl.Boolean,
    'uw_year': pl.Int32,
}

CLAIM_SCHEMA = {
    'claim_ref': pl.Int64,
    'claim_number': pl.Utf8,
    'policy_number': pl.Utf8,
    'status_id': pl.Int64,
    'status_name': pl.Utf8,
    'amount': pl.Float64,
    'paid': pl.Float64,
    'reserve': pl.Float64,
    'regress': pl.Float64,
    'reported_date': pl.Date,
    'event_date': pl.Date,
    'closed_date': pl.Date,
    'claim_type': pl.Utf8,
    'product_name': pl.Utf8,
    'is_orphaned': pl.Boolean,
    'policy_ref': pl.Int64,
}


def empty_frame(schema: dict) -> pl.DataFrame:
    return pl.DataFrame(schema=schema)
