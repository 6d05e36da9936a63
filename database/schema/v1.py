"""Schema v1 - Initial database schema.

This version includes tables for:
- Users and their moderation notifications
- Uploaded models (listings) and their moderation status
- Purchase records
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'username', 'type': 'TEXT', 'nullable': False},
                {'name': 'email', 'type': 'TEXT', 'nullable': False},
                {'name': 'password_hash', 'type': 'TEXT', 'nullable': False},
                {'name': 'role', 'type': 'TEXT', 'nullable': False, 'default': "'artist'"},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_users_username', 'columns': ['username'], 'unique': True},
                {'name': 'idx_users_email', 'columns': ['email'], 'unique': True}
            ]
        },
        {
            'name': 'notifications',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'message', 'type': 'TEXT', 'nullable': False},
                {'name': 'model_title', 'type': 'TEXT'},
                {'name': 'type', 'type': 'TEXT', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id) ON DELETE CASCADE'}
            ],
            'indexes': [
                {'name': 'idx_notifications_user', 'columns': ['user_id', 'created_at']}
            ]
        },
        {
            'name': 'models',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT'},
                {'name': 'price', 'type': 'DECIMAL', 'nullable': False},
                {'name': 'file_url', 'type': 'TEXT', 'nullable': False},
                {'name': 'creator_id', 'type': 'UUID', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'pending'"},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['creator_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_models_creator', 'columns': ['creator_id']},
                {'name': 'idx_models_status', 'columns': ['status', 'created_at']}
            ]
        },
        {
            'name': 'model_purchases',
            'columns': [
                {'name': 'model_id', 'type': 'UUID', 'nullable': False},
                {'name': 'buyer_id', 'type': 'UUID', 'nullable': False},
                {'name': 'purchase_date', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            # One purchase per (model, buyer)
            'primary_key': ['model_id', 'buyer_id'],
            'foreign_keys': [
                {'columns': ['model_id'], 'references': 'models(id) ON DELETE CASCADE'},
                {'columns': ['buyer_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_purchases_buyer', 'columns': ['buyer_id']}
            ]
        }
    ],
    'migrations': []
}
