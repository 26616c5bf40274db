threads_sql = """
CREATE TYPE thread_kind AS ENUM ('direct', 'group');

CREATE TABLE threads (
    thread_id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    thread_type thread_kind NOT NULL DEFAULT 'direct',
    created_by_user_id UUID REFERENCES profiles(id) ON DELETE SET NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    group_name TEXT,
    group_image TEXT
);
"""

thread_participants_sql = """
CREATE TYPE participant_role AS ENUM ('admin', 'member');

CREATE TABLE thread_participants (
    thread_id UUID NOT NULL REFERENCES threads(thread_id) ON DELETE CASCADE,
    user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
    role participant_role NOT NULL DEFAULT 'member',
    joined_at TIMESTAMPTZ NOT NULL DEFAULT now(),

    PRIMARY KEY (thread_id, user_id)
);

CREATE INDEX thread_participants_user_idx ON thread_participants (user_id);
"""

messages_sql = """
CREATE TABLE messages (
    message_id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    thread_id UUID NOT NULL REFERENCES threads(thread_id) ON DELETE CASCADE,
    user_id UUID REFERENCES profiles(id) ON DELETE SET NULL,
    message_content TEXT NOT NULL CHECK (length(message_content) > 0),
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ
);

CREATE INDEX messages_thread_created_idx ON messages (thread_id, created_at);
"""

# Adds members and refreshes the cached thread_type in one transaction.
add_thread_participants_sql = """
CREATE OR REPLACE FUNCTION add_thread_participants(
    p_thread_id UUID,
    p_user_ids UUID[],
    p_thread_type thread_kind
) RETURNS SETOF threads
LANGUAGE plpgsql AS $$
BEGIN
    UPDATE threads SET thread_type = p_thread_type WHERE thread_id = p_thread_id;

    INSERT INTO thread_participants (thread_id, user_id, role, joined_at)
    SELECT p_thread_id, unnest(p_user_ids), 'member', now();

    RETURN QUERY SELECT * FROM threads WHERE thread_id = p_thread_id;
END;
$$;
"""
