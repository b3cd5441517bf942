from windserver.cli import main

raise SystemExit(main())
