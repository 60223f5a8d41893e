#!/usr/bin/env python3
"""
Script to seed the database with a demo owner, hut and bookings
"""

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import date, time, timedelta
from app.database import init_db, drop_db, get_db
from app.models import User, Venue, Reservation, ReservationStatus, ReservationSource
from app.utils.security import generate_booking_token, generate_token
from app.utils.timeutils import combine_local

DEMO_SESSIONS = {
    'beavers': {'enabled': True, 'day': 'monday', 'start_time': '18:00', 'end_time': '19:00'},
    'cubs': {'enabled': True, 'day': 'tuesday', 'start_time': '18:30', 'end_time': '20:00'},
    'scouts': {'enabled': True, 'day': 'thursday', 'start_time': '19:30', 'end_time': '21:30'},
}

DEMO_HOURS = {
    day: {'enabled': True, 'start_time': '09:00', 'end_time': '22:00'}
    for day in ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')
}


def create_bookings(db, venue):
    """A confirmed owner booking and a pending public request next week"""
    saturday = date.today() + timedelta(days=(5 - date.today().weekday()) % 7 + 7)
    bookings = [
        ('Jumble Sale', ReservationStatus.CONFIRMED, ReservationSource.OWNER, time(10), time(13), None),
        ('Birthday Party', ReservationStatus.PENDING, ReservationSource.PUBLIC, time(14), time(17),
         'parent@example.com'),
    ]
    for name, status, source, start, end, email in bookings:
        db.add(Reservation(
            venue_id=venue.id,
            event_name=name,
            contact_name='Demo Contact',
            contact_email=email,
            start_time=combine_local(saturday, start, venue.timezone),
            end_time=combine_local(saturday, end, venue.timezone),
            status=status,
            source=source,
            booking_token=generate_booking_token() if source == ReservationSource.PUBLIC else None
        ))
    return len(bookings)


def main():
    """Main seeding function"""
    print("Dropping existing database...")
    drop_db()

    print("Initializing new database...")
    init_db()

    with get_db() as db:
        owner = User(email='owner@scoutbookings.com', full_name='Demo Hut Owner')
        db.add(owner)
        db.flush()

        venue = Venue(
            owner_id=owner.id,
            name='1st Demo Scout Hut',
            slug='1st-demo-scout-hut',
            timezone='Europe/London',
            availability=DEMO_HOURS,
            weekly_sessions=DEMO_SESSIONS
        )
        db.add(venue)
        db.flush()

        count = create_bookings(db, venue)
        owner_id, venue_id = owner.id, venue.id

    print("\nDatabase seeded successfully!")
    print(f"- Owner owner@scoutbookings.com (id {owner_id})")
    print(f"- Venue 1st Demo Scout Hut (id {venue_id}) with {len(DEMO_SESSIONS)} weekly sessions")
    print(f"- {count} bookings")
    print(f"\nOwner API token: {generate_token({'user_id': owner_id})}")


if __name__ == "__main__":
    main()
