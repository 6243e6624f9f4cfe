from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision = "4c1f7a2d9e10"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "buildings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("operator_id", UUID(as_uuid=True)),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.String(255)),
        sa.Column("building_type", sa.String(50)),
        sa.Column("unit_type", sa.String(50)),
        sa.Column("tenant_type", sa.String(50)),
        sa.Column("metro_stations", JSONB),
        sa.Column("commute_times", JSONB),
        sa.Column("local_essentials", JSONB),
        sa.Column("amenities", JSONB),
        sa.Column("is_concierge", sa.Boolean),
        sa.Column("pet_policy", sa.Boolean),
        sa.Column("pets", JSONB),
        sa.Column("smoking_area", sa.Boolean),
        *_timestamps(),
    )
    op.create_table(
        "properties",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("building_id", UUID(as_uuid=True), sa.ForeignKey("buildings.id", ondelete="CASCADE")),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("descriptions", sa.Text),
        sa.Column("apartment_number", sa.String(50)),
        sa.Column("price", sa.Numeric(10, 2)),
        sa.Column("deposit", sa.Numeric(10, 2)),
        sa.Column("bedrooms", sa.Integer),
        sa.Column("bathrooms", sa.Integer),
        sa.Column("property_type", sa.String(50)),
        sa.Column("furnishing", sa.String(50)),
        sa.Column("bills", sa.String(50)),
        sa.Column("let_duration", sa.String(50)),
        sa.Column("building_type", sa.String(50)),
        sa.Column("available_from", sa.Date),
        sa.Column("square_meters", sa.Numeric(8, 2)),
        sa.Column("tenant_types", JSONB),
        sa.Column("amenities", JSONB),
        sa.Column("pet_policy", sa.Boolean),
        sa.Column("pets", JSONB),
        sa.Column("is_concierge", sa.Boolean),
        sa.Column("smoking_area", sa.Boolean),
        sa.Column("outdoor_space", sa.Boolean),
        sa.Column("balcony", sa.Boolean),
        sa.Column("terrace", sa.Boolean),
        sa.Column("metro_stations", JSONB),
        sa.Column("commute_times", JSONB),
        sa.Column("local_essentials", JSONB),
        sa.Column("photos", JSONB),
        *_timestamps(),
    )
    op.create_index("ix_properties_building_id", "properties", ["building_id"])

    op.create_table(
        "preferences",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("occupation", sa.String(100)),
        sa.Column("family_status", sa.String(100)),
        sa.Column("children_count", sa.String(50)),
        sa.Column("preferred_address", sa.String(255)),
        sa.Column("preferred_metro_stations", JSONB),
        sa.Column("preferred_essentials", JSONB),
        sa.Column("preferred_commute_times", JSONB),
        sa.Column("move_in_date", sa.Date),
        sa.Column("move_out_date", sa.Date),
        sa.Column("min_price", sa.Integer),
        sa.Column("max_price", sa.Integer),
        sa.Column("deposit_preference", sa.String(10)),
        sa.Column("property_types", JSONB),
        sa.Column("bedrooms", JSONB),
        sa.Column("bathrooms", JSONB),
        sa.Column("furnishing", JSONB),
        sa.Column("outdoor_space", sa.Boolean),
        sa.Column("balcony", sa.Boolean),
        sa.Column("terrace", sa.Boolean),
        sa.Column("min_square_meters", sa.Integer),
        sa.Column("max_square_meters", sa.Integer),
        sa.Column("building_types", JSONB),
        sa.Column("let_duration", sa.String(50)),
        sa.Column("bills", sa.String(50)),
        sa.Column("tenant_types", JSONB),
        sa.Column("pet_policy", sa.Boolean),
        sa.Column("pets", JSONB),
        sa.Column("number_of_pets", sa.Integer),
        sa.Column("amenities", JSONB),
        sa.Column("is_concierge", sa.Boolean),
        sa.Column("smoking_area", sa.Boolean),
        sa.Column("hobbies", JSONB),
        sa.Column("ideal_living_environment", JSONB),
        sa.Column("smoker", sa.String(50)),
        sa.Column("additional_info", sa.Text),
        *_timestamps(),
        sa.CheckConstraint("min_price IS NULL OR max_price IS NULL OR min_price <= max_price", name="ck_preferences_price_range"),
        sa.CheckConstraint(
            "move_in_date IS NULL OR move_out_date IS NULL OR move_in_date <= move_out_date",
            name="ck_preferences_dates",
        ),
    )
    op.create_index("ix_preferences_user_id", "preferences", ["user_id"], unique=True)


def downgrade():
    op.drop_index("ix_preferences_user_id", table_name="preferences")
    op.drop_table("preferences")
    op.drop_index("ix_properties_building_id", table_name="properties")
    op.drop_table("properties")
    op.drop_table("buildings")
