"""create chats and chat_messages

Revision ID: 001
Revises:
Create Date: 2026-10-19 10:12:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('chats',
    sa.Column('id', sa.String(length=255), nullable=False),
    sa.Column('participant_a', sa.String(length=128), nullable=True),
    sa.Column('participant_b', sa.String(length=128), nullable=True),
    sa.Column('last_message', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id', name='pk_chats')
    )
    op.create_index('idx_chats_participant_a', 'chats', ['participant_a'])
    op.create_index('idx_chats_participant_b', 'chats', ['participant_b'])

    op.create_table('chat_messages',
    sa.Column('id', sa.String(length=64), nullable=False),
    sa.Column('chat_id', sa.String(length=255), nullable=False),
    sa.Column('sender_id', sa.String(length=128), nullable=False),
    sa.Column('text', sa.Text(), nullable=False),
    sa.Column('image_url', sa.String(length=1000), nullable=True),
    sa.Column('deleted', sa.Boolean(), nullable=False),
    sa.Column('edited', sa.Boolean(), nullable=False),
    sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id', name='pk_chat_messages')
    )
    op.create_index('idx_chat_messages_chat_ts', 'chat_messages', ['chat_id', 'timestamp', 'id'])


def downgrade() -> None:
    op.drop_index('idx_chat_messages_chat_ts', table_name='chat_messages')
    op.drop_table('chat_messages')
    op.drop_index('idx_chats_participant_b', table_name='chats')
    op.drop_index('idx_chats_participant_a', table_name='chats')
    op.drop_table('chats')
