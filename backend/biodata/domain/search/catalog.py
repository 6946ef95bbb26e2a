"""Static facet catalog merged into the filter metadata served to clients."""

from __future__ import annotations

MARITAL_STATUSES: tuple[str, ...] = (
	"Never Married",
	"Divorced",
	"Widowed",
	"Married",
	"Awaiting Divorce",
)

EDUCATION_LEVELS: tuple[str, ...] = (
	"Ph.D",
	"Master's",
	"High School",
	"Diploma",
	"Bachelor's",
	"Professional",
	"M.D",
	"DPT",
	"BDS",
	"DDS",
	"MDS",
	"DMD",
	"JD",
	"M.B.B.S",
)

INTERESTS: tuple[str, ...] = (
	"Travel", "Fitness", "Cooking", "Photography", "Music", "Reading", "Painting", "Movies",
	"Dancing", "Hiking", "Gardening", "Running", "Gaming", "Crafting", "Sports", "Technology",
	"Volunteering", "Writing", "Meditation", "Cycling", "Fishing", "Collecting", "Knitting",
	"Soccer", "Football", "Basketball", "Theater", "Camping", "Skiing", "Martial Arts",
	"Calligraphy", "Board Games", "Trekking", "Tennis", "Chess", "Cricket", "Swimming",
)

# kovil -> pirivu subdivisions; an empty tuple means the kovil is not subdivided
KOVILS: dict[str, tuple[str, ...]] = {
	"Iraniyur": (),
	"Nemam": (),
	"Iluppaikudi": (),
	"Surakudi": (),
	"Velangudi": (),
	"Pillaiyarpatti": (),
	"Illayathangudi": (
		"Okkur udaiyar",
		"Pattinasamiyar",
		"Peru maruthur udaiyar",
		"Kazhani vasal udaiyar",
		"Kinkini Kooru udaiyar",
		"Pera senthur udaiyar",
		"Siru sethur udaiyar",
	),
	"Mathur": (
		"Uraiyur udaiyar",
		"Arumbakkur udaiyar",
		"Mannur udaiyar",
		"Manalur udaiyar",
		"Kannur udaiyar",
		"Karuppur udaiyar",
		"Kulathur udaiyar",
	),
	"Vairavankovil": (
		"Sirukulathur Kudiyar - Periya Vaguppu",
		"Sirukulathur Kudiyar - Thaiyanar Vaguppu",
		"Sirukulathur Kudiyar - Pillayar Vaguppu",
		"Kazhani vassal Kudiyar",
		"Marutheinthira puram udaiyar",
	),
}
