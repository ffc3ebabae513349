import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


class EnvExampleTests(unittest.TestCase):
    def test_env_example_exists_and_has_salesforce_keys(self):
        env = (ROOT / '.env.example').read_text(encoding='utf-8')
        for key in ['SF_TOKENHOST', 'SF_CLIENT_ID', 'SF_USERNAME', 'SF_PRIVATE_KEY_PEM_B64', 'DATABASE_URL']:
            self.assertIn(key + '=', env)

    def test_env_example_leaves_credentials_blank(self):
        env = (ROOT / '.env.example').read_text(encoding='utf-8')
        values = dict(line.split('=', 1) for line in env.splitlines() if '=' in line)
        self.assertEqual(values['SF_PRIVATE_KEY_PEM_B64'], '')
        self.assertEqual(values['SF_CLIENT_ID'], '')


if __name__ == '__main__':
    unittest.main()
