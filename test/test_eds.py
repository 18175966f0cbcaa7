import io
import unittest

import canopen_sdo
from canopen_sdo.objectdictionary import datatypes as dt
from canopen_sdo.objectdictionary import eds

from .util import SAMPLE_EDS


class TestEDS(unittest.TestCase):

    def setUp(self):
        self.od = canopen_sdo.import_od(SAMPLE_EDS)

    def test_load_nonexisting_file(self):
        with self.assertRaises(IOError):
            canopen_sdo.import_od('/path/to/wrong_file.eds')

    def test_load_unsupported_format(self):
        with self.assertRaisesRegex(NotImplementedError, "No support for this format"):
            canopen_sdo.import_od('/path/to/wrong_file.bin')

    def test_load_file_object(self):
        with open(SAMPLE_EDS) as fp:
            od = canopen_sdo.import_od(fp)
        self.assertIn(0x2000, od)

    def test_variable(self):
        var = self.od.get_variable(0x1000)
        self.assertEqual(var.name, 'Device type')
        self.assertEqual(var.index, 0x1000)
        self.assertEqual(var.subindex, 0)
        self.assertEqual(var.data_type, dt.UNSIGNED32)
        self.assertEqual(var.access_type, 'ro')
        self.assertTrue(var.readable)
        self.assertFalse(var.writable)

    def test_variable_without_object_type(self):
        var = self.od.get_variable(0x1017)
        self.assertEqual(var.name, 'Producer heartbeat time')
        self.assertEqual(var.data_type, dt.UNSIGNED16)
        self.assertTrue(var.writable)

    def test_record(self):
        record = self.od[0x2000]
        self.assertEqual(record.name, 'Sensors')
        self.assertEqual(list(record), [0, 1, 2])
        var = record[1]
        self.assertEqual(var.name, 'Temperature')
        self.assertEqual(var.data_type, dt.REAL32)
        self.assertIs(var.parent, record)

    def test_capitalized_sub_section(self):
        var = self.od.get_variable(0x2002, 1)
        self.assertEqual(var.name, 'Voltage')

    def test_only_readable_entries(self):
        # const and wo entries are left out
        self.assertNotIn(0x1008, self.od)
        self.assertIsNone(self.od.get_variable(0x2002, 2))
        self.assertIsNone(self.od.get_variable(0x3000, 0))
        self.assertEqual(len(self.od), 14)

    def test_unsupported_data_type(self):
        var = self.od.get_variable(0x2005)
        self.assertEqual(var.name, 'Position')
        self.assertIsNone(var.data_type)

    def test_missing_entry(self):
        with self.assertRaises(KeyError):
            self.od[0x3000]
        with self.assertRaises(KeyError):
            self.od[0x2000][5]


class TestEDSTpdos(unittest.TestCase):

    def setUp(self):
        self.tpdos = eds.import_tpdos_from_eds(SAMPLE_EDS)

    def test_enabled_tpdos(self):
        self.assertEqual([tpdo.tpdo_number for tpdo in self.tpdos], [1, 3])

    def test_tpdo1(self):
        tpdo = self.tpdos[0]
        self.assertEqual(tpdo.cob_id, 0x180)
        self.assertEqual(tpdo.transmission_type, 254)
        # The dummy entry keeps its place in the frame
        self.assertEqual(len(tpdo.mappings), 3)
        temperature, dummy, status = tpdo.mappings
        self.assertEqual((dummy.index, dummy.bit_length), (0, 8))
        self.assertEqual(dummy.name, "0x0000:00")
        self.assertEqual((temperature.index, temperature.subindex, temperature.bit_length),
                         (0x2000, 1, 32))
        self.assertEqual(temperature.name, 'Temperature')
        self.assertEqual(temperature.data_type, dt.REAL32)
        self.assertEqual(status.name, 'Status word')
        self.assertEqual(status.data_type, dt.UNSIGNED16)

    def test_tpdo3(self):
        tpdo = self.tpdos[1]
        self.assertEqual(tpdo.cob_id, 0x380)
        self.assertEqual(tpdo.transmission_type, 0xFF)
        self.assertEqual(tpdo.mappings[0].name, 'Voltage')

    def test_node_id(self):
        tpdos = eds.import_tpdos_from_eds(SAMPLE_EDS, node_id=4)
        self.assertEqual([tpdo.cob_id for tpdo in tpdos], [0x184, 0x384])

    def test_unknown_object_names(self):
        text = "\n".join([
            "[1800sub1]", "DefaultValue=0x181",
            "[1A00sub0]", "DefaultValue=1",
            "[1A00sub1]", "DefaultValue=0x21000108",
        ])
        fp = io.StringIO(text)
        tpdos = eds.import_tpdos_from_eds(fp)
        mapping = tpdos[0].mappings[0]
        self.assertEqual(mapping.name, '0x2100:01')
        self.assertEqual(mapping.data_type, dt.UNSIGNED8)

    def test_empty_entries_skipped(self):
        text = "\n".join([
            "[1800sub1]", "DefaultValue=0x181",
            "[1A00sub0]", "DefaultValue=2",
            "[1A00sub1]", "DefaultValue=0x21000100",
            "[1A00sub2]", "DefaultValue=0x21000218",
        ])
        tpdos = eds.import_tpdos_from_eds(io.StringIO(text))
        self.assertEqual([m.value for m in tpdos[0].mappings], [0x21000218])

    def test_convert_cob_id(self):
        self.assertEqual(eds._convert_cob_id("$NODEID+0x180"), 0x180)
        self.assertEqual(eds._convert_cob_id("$NODEID+0x180", 5), 0x185)
        self.assertEqual(eds._convert_cob_id("0x180+$NODEID", 5), 0x185)
        self.assertEqual(eds._convert_cob_id("NODEID + 384"), 0x180)
        self.assertEqual(eds._convert_cob_id("0x281"), 0x281)
        self.assertEqual(eds._convert_cob_id("641"), 0x281)
        with self.assertRaises(ValueError):
            eds._convert_cob_id("$NODEID+garbage")


class TestDataTypes(unittest.TestCase):

    def test_from_eds_type(self):
        self.assertEqual(dt.from_eds_type("0x0007"), dt.UNSIGNED32)
        self.assertEqual(dt.from_eds_type("8"), dt.REAL32)
        self.assertIsNone(dt.from_eds_type("0x0010"))
        self.assertIsNone(dt.from_eds_type(""))

    def test_type_from_bit_length(self):
        self.assertEqual(dt.type_from_bit_length(8), dt.UNSIGNED8)
        self.assertEqual(dt.type_from_bit_length(16), dt.UNSIGNED16)
        self.assertEqual(dt.type_from_bit_length(32), dt.UNSIGNED32)

    def test_parse_int(self):
        self.assertEqual(dt.parse_int("0x1A"), 26)
        self.assertEqual(dt.parse_int(" 0010 "), 10)


if __name__ == "__main__":
    unittest.main()
