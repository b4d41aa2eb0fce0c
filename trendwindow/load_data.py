import argparse
import csv
import time
from typing import Optional

from .config import settings
from .database import get_db, init_db
from .series import parse_time

HEADER = ["time", "value", "subject", "label"]

def _parse_row(parts):
    if len(parts) < 2:
        raise ValueError("expected at least time,value")
    raw_time = parts[0].strip()
    ts = parse_time(int(raw_time)) if raw_time.lstrip("-").isdigit() else parse_time(raw_time)
    if ts is None:
        raise ValueError(f"unparsable time {raw_time!r}")
    value = float(parts[1])
    subject = parts[2].strip() if len(parts) > 2 and parts[2].strip() else "default"
    label = parts[3].strip() if len(parts) > 3 and parts[3].strip() else None
    return subject, ts, value, label

def load_points_from_csv(csv_file_path, batch_size=100000, db_path: Optional[str] = None):
    """
    Load trend points from a CSV file into the local store.

    Args:
        csv_file_path: Path to the CSV file (time,value[,subject[,label]])
        batch_size: Number of records to insert in a single batch
        db_path: Database file, defaults to settings.DATABASE_URL

    Returns:
        int: Number of rows inserted
    """
    print(f"Loading data from {csv_file_path}...")
    start_time = time.time()

    # Initialize the database
    init_db(db_path)

    total_rows = 0
    batch = []

    with open(csv_file_path, 'r', newline='') as file:
        reader = csv.reader(file)

        with get_db(db_path) as conn:
            cursor = conn.cursor()

            for line_no, parts in enumerate(reader, start=1):
                if not parts:
                    continue
                # Skip header
                if line_no == 1 and [p.strip().lower() for p in parts[:2]] == HEADER[:2]:
                    continue

                try:
                    batch.append(_parse_row(parts))
                    total_rows += 1
                except ValueError as e:
                    print(f"Error processing line {line_no}: {','.join(parts)}. Error: {e}")
                    continue

                if len(batch) >= batch_size:
                    cursor.executemany(
                        "INSERT INTO trend_points (subject, time, value, label) VALUES (?, ?, ?, ?)",
                        batch
                    )
                    conn.commit()
                    print(f"Inserted {total_rows} rows so far...")
                    batch = []

            # Insert any remaining records
            if batch:
                cursor.executemany(
                    "INSERT INTO trend_points (subject, time, value, label) VALUES (?, ?, ?, ?)",
                    batch
                )
                conn.commit()

    duration = time.time() - start_time
    print(f"Data loading completed. Inserted {total_rows} rows in {duration:.2f} seconds.")

    # Get some stats about the data
    with get_db(db_path) as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT COUNT(*), MIN(time), MAX(time) FROM trend_points")
        count, min_ts, max_ts = cursor.fetchone()

        print(f"Total records in database: {count}")
        print(f"Time range: {min_ts} to {max_ts}")

    return total_rows

def main(argv=None):
    parser = argparse.ArgumentParser(description="Load trend points into the local store")
    parser.add_argument("csv_file", help="CSV with time,value[,subject[,label]] rows")
    parser.add_argument("--db", default=settings.DATABASE_URL, help="sqlite database path")
    parser.add_argument("--batch-size", type=int, default=100000)
    args = parser.parse_args(argv)
    load_points_from_csv(args.csv_file, batch_size=args.batch_size, db_path=args.db)

if __name__ == "__main__":
    main()
