TEST_BUCKET_NAME = "test-file-gateway"
TEST_REGION = "us-east-1"
TEST_SENDER = "no-reply@example.com"

TEST_OWNER_ID = "u1"
TEST_OWNER_EMAIL = "u1@example.com"

TEST_FILE_NAME = "test.txt"
TEST_FILE_CONTENT = b"Hello, world!"
TEST_FILE_CONTENT_TYPE = "text/plain"

TEST_PDF_NAME = "report.pdf"
TEST_PDF_CONTENT = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<</Root 1 0 R>>\n%%EOF"
TEST_PDF_CONTENT_TYPE = "application/pdf"
