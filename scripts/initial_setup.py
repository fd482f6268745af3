"""Create the database schema and optionally a demo group."""
import argparse
from pathlib import Path

from classnotify.database import SessionLocal, run_migrations
from classnotify.models.database_models import Group, GroupMember, User


def seed_demo_group(size: int) -> str:
    """Insert a demo group with ``size`` approved students; returns the group id."""
    with SessionLocal() as db:
        group = Group(name="Demo Group", description="Seeded by initial_setup.py")
        db.add(group)
        db.flush()
        for index in range(size):
            user = User(
                email=f"student{index + 1}@example.com",
                name=f"Student {index + 1}",
                role="student",
                is_approved=True,
            )
            db.add(user)
            db.flush()
            db.add(GroupMember(group_id=group.id, user_id=user.id))
        db.commit()
        return group.id


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--demo-students", type=int, default=0, help="Seed a demo group with N students")
    args = parser.parse_args()

    data_dir = Path("data")
    data_dir.mkdir(exist_ok=True)
    run_migrations()
    print("Database initialised at", data_dir)

    if args.demo_students:
        group_id = seed_demo_group(args.demo_students)
        print(f"Demo group {group_id} created with {args.demo_students} students")


if __name__ == "__main__":
    main()
