#!/usr/bin/env python3
"""
Seed a super user and a public event for local development

Examples:
    python scripts/create_mock_event.py
    python scripts/create_mock_event.py --email dj@example.com --theme "Late Night Jazz"
"""

from script_base import ScriptBase, run_script

from auth_utils import hash_password


def main():
    script = ScriptBase(
        name="create_mock_event",
        description="Create a super user (if missing) and a mock public event",
    )
    script.parser.add_argument('--email', default='admin@example.com', help='Super user email')
    script.parser.add_argument('--password', default='admin123', help='Super user password')
    script.parser.add_argument('--provider', default='spotify',
                               choices=['spotify', 'apple', 'youtube'],
                               help='Super user music provider')
    script.parser.add_argument('--name', default='Summer Music Festival', help='Event name')
    script.parser.add_argument('--theme', default='Summer Vibes', help='Event theme')
    script.add_debug_arg()
    args = script.parse_args()

    script.print_header()
    stats = {'users_created': 0, 'users_upgraded': 0, 'events_created': 0}

    with script.open_store() as store:
        user = store.find_user_by_email(args.email)
        if user is None:
            user = store.create_user(
                email=args.email,
                name='Admin User',
                music_provider=args.provider,
                password_hash=hash_password(args.password),
                is_super_user=True,
            )
            stats['users_created'] += 1
        elif not user.is_super_user:
            user = store.set_super_user(user.id)
            stats['users_upgraded'] += 1

        event = store.create_event(
            name=args.name,
            description='Join us for a shared listening session with a playlist shaped by everyone in the room.',
            theme=args.theme,
            is_public=True,
            creator_id=user.id,
        )
        stats['events_created'] += 1
        script.logger.info(f"Event {event.id} created by {user.email}")

    script.print_summary(stats)
    return True


if __name__ == "__main__":
    run_script(main)
