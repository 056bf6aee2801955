from tortoise import BaseDBAsyncClient


async def upgrade(db: BaseDBAsyncClient) -> str:
    return """
        CREATE TABLE IF NOT EXISTS "users" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "external_uid" VARCHAR(128) NOT NULL UNIQUE,
    "email" VARCHAR(255) NOT NULL,
    "display_name" VARCHAR(255),
    "photo_url" VARCHAR(1024),
    "created_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP
);
COMMENT ON TABLE "users" IS 'A dashboard account, keyed by the identity provider''s uid.';
CREATE TABLE IF NOT EXISTS "facebook_integrations" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "facebook_user_id" VARCHAR(64),
    "page_id" VARCHAR(64) NOT NULL,
    "page_name" VARCHAR(255),
    "access_token" TEXT NOT NULL,
    "permissions" JSONB NOT NULL,
    "token_expires_at" TIMESTAMPTZ,
    "is_active" BOOL NOT NULL  DEFAULT True,
    "last_synced_at" TIMESTAMPTZ,
    "created_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP,
    "user_id" INT NOT NULL REFERENCES "users" ("id") ON DELETE CASCADE,
    CONSTRAINT "uid_facebook_in_user_id_3c1b8e" UNIQUE ("user_id", "page_id")
);
CREATE INDEX IF NOT EXISTS "idx_facebook_in_page_id_5d2f07" ON "facebook_integrations" ("page_id");
CREATE TABLE IF NOT EXISTS "facebook_insights" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "metric_name" VARCHAR(64) NOT NULL,
    "metric_value" DOUBLE PRECISION NOT NULL  DEFAULT 0,
    "metric_period" VARCHAR(32) NOT NULL  DEFAULT 'day',
    "date_start" DATE NOT NULL,
    "date_end" DATE NOT NULL,
    "created_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP,
    "integration_id" INT NOT NULL REFERENCES "facebook_integrations" ("id") ON DELETE CASCADE,
    CONSTRAINT "uid_facebook_in_integra_8a41c2" UNIQUE ("integration_id", "metric_name", "metric_period", "date_start", "date_end")
);
CREATE TABLE IF NOT EXISTS "facebook_leads" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "facebook_lead_id" VARCHAR(64) NOT NULL UNIQUE,
    "form_id" VARCHAR(64) NOT NULL,
    "form_name" VARCHAR(255),
    "lead_data" JSONB NOT NULL,
    "created_time" TIMESTAMPTZ,
    "status" VARCHAR(9) NOT NULL  DEFAULT 'new',
    "created_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMPTZ NOT NULL  DEFAULT CURRENT_TIMESTAMP,
    "integration_id" INT NOT NULL REFERENCES "facebook_integrations" ("id") ON DELETE CASCADE
);
COMMENT ON COLUMN "facebook_leads"."status" IS 'NEW: new\nCONTACTED: contacted\nQUALIFIED: qualified\nCONVERTED: converted';
CREATE TABLE IF NOT EXISTS "aerich" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "version" VARCHAR(255) NOT NULL,
    "app" VARCHAR(100) NOT NULL,
    "content" JSONB NOT NULL
);"""


async def downgrade(db: BaseDBAsyncClient) -> str:
    return """
        DROP TABLE IF EXISTS "facebook_leads";
DROP TABLE IF EXISTS "facebook_insights";
DROP TABLE IF EXISTS "facebook_integrations";
DROP TABLE IF EXISTS "users";"""
