#!/usr/bin/env python3
"""
Initialize the Ticketdesk Supabase schema with a direct PostgreSQL connection
"""
import os
import psycopg2
from dotenv import load_dotenv

load_dotenv()

TABLES = ['ticket_guild_configs', 'ticket_categories', 'ticket_counters', 'tickets']


def get_connection():
    """Get PostgreSQL connection using .env variables"""
    host = os.getenv("SUPABASE_DB_HOST")
    port = int(os.getenv("SUPABASE_DB_PORT", "6543"))
    database = os.getenv("SUPABASE_DB_NAME", "postgres")
    user = os.getenv("SUPABASE_DB_USER")
    password = os.getenv("SUPABASE_DB_PASSWORD")

    print(f"🔗 Connecting to: {host}:{port}")
    print(f"   Database: {database}")
    print(f"   User: {user}")

    return psycopg2.connect(
        host=host,
        port=port,
        database=database,
        user=user,
        password=password
    )


def create_schema():
    """Create database schema"""

    ddl_sql = """
    -- Per-guild switch for the ticket system
    CREATE TABLE IF NOT EXISTS ticket_guild_configs (
        guild_id TEXT PRIMARY KEY,
        is_enabled BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW()
    );

    -- Ticket categories (welcome template stored as JSONB)
    CREATE TABLE IF NOT EXISTS ticket_categories (
        id TEXT PRIMARY KEY,
        guild_id TEXT NOT NULL REFERENCES ticket_guild_configs(guild_id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        emoji TEXT,
        support_role_id TEXT,
        is_enabled BOOLEAN NOT NULL DEFAULT TRUE,
        position INTEGER NOT NULL DEFAULT 0,
        parent_channel_id TEXT,
        ticket_message JSONB,
        created_at TIMESTAMPTZ DEFAULT NOW()
    );

    -- Running ticket number per guild
    CREATE TABLE IF NOT EXISTS ticket_counters (
        guild_id TEXT PRIMARY KEY,
        last_number INTEGER NOT NULL DEFAULT 0
    );

    -- Tickets (never deleted; deletion closes the record)
    CREATE TABLE IF NOT EXISTS tickets (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        guild_id TEXT NOT NULL,
        ticket_number INTEGER NOT NULL CHECK (ticket_number > 0),
        creator_id TEXT NOT NULL,
        channel_id TEXT NOT NULL UNIQUE,
        category_id TEXT NOT NULL REFERENCES ticket_categories(id),
        status TEXT NOT NULL DEFAULT 'open' CHECK (status IN ('open', 'closed', 'archived')),
        claimed_by_id TEXT,
        close_reason TEXT,
        closed_by_id TEXT,
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW(),
        closed_at TIMESTAMPTZ,
        UNIQUE (guild_id, ticket_number)
    );

    -- At most one open ticket per creator per guild
    CREATE UNIQUE INDEX IF NOT EXISTS uq_tickets_open_per_creator
        ON tickets(guild_id, creator_id) WHERE status = 'open';

    CREATE INDEX IF NOT EXISTS idx_tickets_guild_id ON tickets(guild_id);
    CREATE INDEX IF NOT EXISTS idx_tickets_status ON tickets(status);
    CREATE INDEX IF NOT EXISTS idx_ticket_categories_guild_id ON ticket_categories(guild_id, position);
    """

    # Numbering and insert in one transaction; a second open ticket for the
    # same creator fails with unique_violation (23505) from the partial index.
    function_sql = """
    CREATE OR REPLACE FUNCTION create_ticket(
        p_guild_id TEXT,
        p_creator_id TEXT,
        p_channel_id TEXT,
        p_category_id TEXT
    ) RETURNS tickets
    LANGUAGE plpgsql
    AS $$
    DECLARE
        v_number INTEGER;
        v_ticket tickets;
    BEGIN
        INSERT INTO ticket_counters (guild_id, last_number)
        VALUES (p_guild_id, 1)
        ON CONFLICT (guild_id)
        DO UPDATE SET last_number = ticket_counters.last_number + 1
        RETURNING last_number INTO v_number;

        INSERT INTO tickets (guild_id, ticket_number, creator_id, channel_id, category_id)
        VALUES (p_guild_id, v_number, p_creator_id, p_channel_id, p_category_id)
        RETURNING * INTO v_ticket;

        RETURN v_ticket;
    END;
    $$;
    """

    sample_sql = """
    INSERT INTO ticket_guild_configs (guild_id, is_enabled)
    VALUES ('000000000000000001', TRUE)
    ON CONFLICT DO NOTHING;

    INSERT INTO ticket_categories (id, guild_id, name, description, emoji, position, ticket_message)
    VALUES
        ('general', '000000000000000001', 'General Support', 'Questions about the server', '🎫', 0,
         '{"welcome_message": null, "include_support_team": false}'),
        ('billing', '000000000000000001', 'Billing', 'Payments and refunds', '💳', 1,
         '{"welcome_message": "Thanks for reaching out about billing.", "include_support_team": true}')
    ON CONFLICT DO NOTHING;
    """

    conn = None
    try:
        conn = get_connection()
        cur = conn.cursor()

        print("🔧 Creating database schema...")
        cur.execute(ddl_sql)
        conn.commit()
        print("✅ DDL executed successfully")

        print("⚙️ Creating create_ticket function...")
        cur.execute(function_sql)
        conn.commit()
        print("✅ Function created")

        if os.getenv("SEED_SAMPLE_DATA") == "1":
            print("📝 Inserting sample data...")
            cur.execute(sample_sql)
            conn.commit()
            print("✅ Sample data inserted")

        cur.execute("""
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
            AND table_name = ANY(%s)
            ORDER BY table_name
        """, (TABLES,))
        tables = cur.fetchall()

        print("\n📊 Created tables:")
        for table in tables:
            print(f"  - {table[0]}")

        for table_name in TABLES:
            cur.execute(f"SELECT COUNT(*) FROM {table_name}")
            count = cur.fetchone()[0]
            print(f"  {table_name}: {count} records")

        cur.close()
        return True

    except Exception as e:
        print(f"❌ Error: {str(e)}")
        if conn:
            conn.rollback()
        return False
    finally:
        if conn:
            conn.close()


if __name__ == "__main__":
    import sys
    success = create_schema()
    sys.exit(0 if success else 1)
