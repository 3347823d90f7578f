from workout_core.main import main

raise SystemExit(main())
