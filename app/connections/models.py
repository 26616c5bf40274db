connections_sql = """
CREATE TYPE connection_status AS ENUM ('pending', 'accepted');

CREATE TABLE connections (
    connection_id UUID PRIMARY KEY DEFAULT gen_random_uuid(),

    user_id_1 UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    user_id_2 UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    requester_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,

    status connection_status NOT NULL DEFAULT 'pending',
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),

    -- One row per unordered pair
    CONSTRAINT ordered_users CHECK (user_id_1 < user_id_2),
    CONSTRAINT unique_connection_pair UNIQUE (user_id_1, user_id_2),

    CONSTRAINT requester_in_pair CHECK (requester_id IN (user_id_1, user_id_2))
);
"""
