import unittest

from ptw.hazards import notes, taxonomy


class TaxonomyTests(unittest.TestCase):
    def test_resolve_known_hazard(self):
        hazard = taxonomy.resolve_hazard("1-0")
        self.assertTrue(hazard.known)
        self.assertEqual(hazard.category, "Mechanische Gefährdungen")
        self.assertEqual(hazard.hazard, "Quetschung durch bewegte Teile")
        self.assertEqual(hazard.label, "Mechanische Gefährdungen: Quetschung durch bewegte Teile")

    def test_index_out_of_range_keeps_category(self):
        hazard = taxonomy.resolve_hazard("1-99")
        self.assertFalse(hazard.known)
        self.assertEqual(hazard.category, "Mechanische Gefährdungen")
        self.assertIn(taxonomy.UNKNOWN_HAZARD, hazard.hazard)

    def test_unknown_category(self):
        hazard = taxonomy.resolve_hazard("99-1")
        self.assertFalse(hazard.known)
        self.assertEqual(hazard.category, taxonomy.UNKNOWN_CATEGORY)

    def test_malformed_ids(self):
        for raw in ("abc", "1_0", "", 5, None):
            hazard = taxonomy.resolve_hazard(raw)
            self.assertFalse(hazard.known)
            self.assertIsNone(hazard.hazard_index)
            self.assertEqual(hazard.category, taxonomy.UNKNOWN_CATEGORY)

    def test_catalogue_shape(self):
        data = taxonomy.taxonomy_as_dict()
        self.assertEqual(len(data), 11)
        self.assertEqual(data["1"]["hazards"][0]["id"], "1-0")
        for category_id, category in data.items():
            for hazard in category["hazards"]:
                self.assertTrue(taxonomy.is_known_hazard(hazard["id"]))
                self.assertTrue(hazard["id"].startswith(f"{category_id}-"))


class HazardNotesTests(unittest.TestCase):
    def test_serialize_empty(self):
        self.assertEqual(notes.serialize_hazard_notes({}), "{}")
        self.assertEqual(notes.serialize_hazard_notes(None), "{}")

    def test_serialize_keeps_umlauts(self):
        self.assertEqual(notes.serialize_hazard_notes({"1-0": "Schutzhandschuhe für alle"}), '{"1-0": "Schutzhandschuhe für alle"}')

    def test_serialized_notes_parse_back_unchanged(self):
        samples = [
            {},
            {"1-0": "Schutzhandschuhe"},
            {"1-0": "", "5-1": "Brandwache \"vor Ort\"", "7-2": "Gehörschutz\nab 85 dB(A)"},
            {"2-0": "Freischalten, gegen Wiedereinschalten sichern", "11-3": "Ärztliche Vorsorge"},
        ]
        for sample in samples:
            with self.subTest(sample=sample):
                self.assertEqual(notes.parse_hazard_notes(notes.serialize_hazard_notes(sample)), sample)

    def test_parse_tolerates_bad_input(self):
        self.assertEqual(notes.parse_hazard_notes("not json"), {})
        self.assertEqual(notes.parse_hazard_notes("[1, 2]"), {})
        self.assertEqual(notes.parse_hazard_notes(""), {})
        self.assertEqual(notes.parse_hazard_notes({"1-0": None}), {"1-0": ""})

    def test_orphan_keys(self):
        orphaned = notes.orphan_note_keys({"1-0": "a", "2-1": "b", "3-0": "c"}, ["1-0"])
        self.assertEqual(orphaned, ["2-1", "3-0"])


class StringListTests(unittest.TestCase):
    def test_accepted_shapes(self):
        self.assertEqual(notes.parse_string_list(["1-0", " 2-1 ", ""]), ["1-0", "2-1"])
        self.assertEqual(notes.parse_string_list('["1-0", "2-1"]'), ["1-0", "2-1"])
        self.assertEqual(notes.parse_string_list("1-0, 2-1"), ["1-0", "2-1"])
        self.assertEqual(notes.parse_string_list("1-0 2-1"), ["1-0", "2-1"])

    def test_empty_values(self):
        self.assertEqual(notes.parse_string_list(None), [])
        self.assertEqual(notes.parse_string_list("   "), [])
