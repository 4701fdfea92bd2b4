"""Example usage of the nddb library."""

from pathlib import Path

from nddb import Collection

# Create a data directory for storage
data_dir = Path("./example_data")

people = Collection(
    [
        {"id": 1, "name": "Alice", "age": 30, "address": {"city": "Rome"}},
        {"id": 2, "name": "Bob", "age": 25, "address": {"city": "Berlin"}},
        {"id": 3, "name": "Charlie", "age": 35, "address": {"city": "Rome"}},
        {"id": 4, "name": "Diana", "age": 28},
        {"id": 5, "name": "Eve", "age": 22, "address": {"city": "Paris"}},
        {"id": 6, "name": "Frank", "age": 45, "address": {"city": "Berlin"}},
    ]
)

# Indexes, hashes and views are kept in sync on every insert
people.index("by_id", lambda p: p["id"])
people.hash("by_city", lambda p: p["address"]["city"])
people.view("over_thirty", lambda p: p if p["age"] > 30 else None)

people.insert({"id": 7, "name": "Grace", "age": 31, "address": {"city": "Paris"}})

print("Lookup by id:")
print(f"  {people.get_index('by_id').get(3)}")

print("\nPeople by city:")
for city, group in people.get_hash("by_city").items():
    print(f"  {city}: {', '.join(p['name'] for p in group)}")

print("\nOver thirty (view):")
for p in people.get_view("over_thirty"):
    print(f"  {p['name']}, age {p['age']}")

# Chained conditions are evaluated right to left
result = people.select("age", ">=", 28).and_("address.city", "==", "Rome").or_("name", "==", "Eve").execute()
print("\nage >= 28 and city == Rome, or Eve:")
for p in result.sort("age"):
    print(f"  {p['name']}")

# The same with a text query
result = people.find('age >< [24, 40] and address.city in ["Berlin", "Paris"]')
print(f"\nBetween 24 and 40 in Berlin or Paris: {[p['name'] for p in result]}")

print(f"\nMean age: {people.mean('age'):.1f}, stddev: {people.stddev('age'):.1f}")

# Save in each format
for name in ("people.json", "people.ndjson", "people.csv"):
    people.save(data_dir / name)

print(f"\nFiles created in {data_dir}:")
for f in sorted(data_dir.iterdir()):
    print(f"  {f.name} ({f.stat().st_size} bytes)")

print("\n" + "=" * 60)
print("You can now query this data from the command line:")
print(f"  nddb-query {data_dir / 'people.json'} -q 'age > 30' --sort name")
